USER_ID_HEADER = "Mattermost-User-Id"
SYSTEM_ADMIN_ROLE = "system_admin"

SECRET_KEY_PREFIX = "secret_"
SECRET_POST_TYPE = "custom_secret"
SECRET_TITLE = "Secret Message"
CLOSED_COLOR = "#DDDDDD"

# KV listing page size; a short page means we've reached the end.
KV_PAGE_SIZE = 1000

# How many recent channel posts are scanned when looking for a placeholder.
PLACEHOLDER_SCAN_LIMIT = 100

# Attempts at recording a viewer before giving up.
MAX_VIEW_ATTEMPTS = 3

# Used when the channel's member count can't be determined.
FALLBACK_MEMBER_COUNT = 10

BOT_USERNAME = "secrets-bot"
BOT_DISPLAY_NAME = "Secrets Bot"
BOT_DESCRIPTION = "A bot account for the Secrets plugin"

COMMAND_TRIGGER = "secret"
COMMAND_DISPLAY_NAME = "Secret Message"
COMMAND_DESCRIPTION = "Send a secret message that disappears after being viewed"
COMMAND_AUTOCOMPLETE_DESC = "Create a secret message"
COMMAND_AUTOCOMPLETE_HINT = "[message]"

STATUS_TEXT = (
    "This message can only be viewed once per person. It will be automatically deleted "
    "when everyone in the channel has viewed it or when it expires."
)
