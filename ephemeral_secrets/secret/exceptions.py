class SecretError(Exception):
    """
    Base for every error the secret service surfaces.
    """


class InvalidInput(SecretError): ...


class InvalidID(InvalidInput): ...


class InvalidParent(SecretError): ...


class NotFound(SecretError): ...


class StoreUnavailable(SecretError): ...


class SaveFailed(StoreUnavailable): ...


class HostUnavailable(SecretError): ...


class Corrupt(SecretError): ...
