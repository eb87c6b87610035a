"""User messages and help text for Coffer."""

# Success messages
SUCCESS_INITIALIZED = "Vault created at '{path}'."
SUCCESS_ADDED = "Added {kind} '{name}' ({id})."
SUCCESS_UPDATED = "Updated '{name}'."
SUCCESS_MOVED = "Moved '{name}'."
SUCCESS_DELETED = "Deleted '{name}' ({count} item(s))."
SUCCESS_TAG_RENAMED = "Renamed tag '{old}' to '{new}'."
SUCCESS_TAG_DELETED = "Deleted tag '{name}'."
SUCCESS_EXPORTED = "Encrypted vault exported to '{path}'."
SUCCESS_EXPORTED_PLAIN = "Decrypted vault exported to '{path}'."
SUCCESS_RESTORED = "Vault restored from '{path}'."
SUCCESS_ROTATED = "Master password changed. The vault is now locked."
SUCCESS_LOCKOUT_UPDATED = "Brute-force policy updated."
SUCCESS_VAULT_DELETED = "Vault deleted."
SUCCESS_UNLOCKED = "Vault unlocked"
SUCCESS_LOCKED = "Vault locked"

# Error messages
ERROR_GENERIC = "Error: {error}"
ERROR_FILE_EXISTS = "File '{path}' already exists. Use --force to overwrite."
ERROR_FILE_NOT_FOUND = "File '{path}' not found."
ERROR_AMBIGUOUS_ITEM = "'{ref}' matches several items; use the item id."
ERROR_UNKNOWN_COMMAND = "Unknown command: {command}"
ERROR_OPERATION_CANCELLED = "Operation cancelled."
ERROR_PASSWORD_MISMATCH = "Passwords do not match."
ERROR_UNLOCK_CANCELLED = "Vault unlock cancelled"
ERROR_MAX_ATTEMPTS = "Maximum attempts exceeded"
ERROR_USAGE_CD = "Usage: cd <folder>|..|/"
ERROR_USAGE_CAT = "Usage: cat <item>"
ERROR_USAGE_RM = "Usage: rm <item>"
ERROR_USAGE_MKDIR = "Usage: mkdir <name>"
ERROR_USAGE_NOTE = "Usage: note <name> <text>"

# One message per error kind
ERROR_MESSAGES = {
    "invalid_master_key": "Incorrect master password.",
    "locked_out": "{error}",
    "vault_already_initialized": "A vault already exists here.",
    "vault_not_initialized": "No vault found. Run 'coffer init' first.",
    "vault_locked": "The vault is locked.",
    "item_not_found": "{error}",
    "invalid_input": "Invalid input: {error}",
    "io": "File error: {error}",
    "crypto": "Decryption failed: {error}",
    "storage": "Storage error: {error}",
    "serialization": "Data format error: {error}",
    "internal": ERROR_GENERIC,
}

# Info messages
INFO_NO_ITEMS = "No items found."
INFO_NO_TAGS = "No tags found."
INFO_GOODBYE = "Goodbye!"
INFO_CANCELLED = "Cancelled"
INFO_HELP = "Run 'coffer --help' for usage information."
INFO_CREATING_VAULT = "Creating new vault at {path}"
INFO_NOT_INITIALIZED = "No vault at {path}. Run 'coffer init' to create one."
INFO_AUTO_LOCKED = "Vault locked after inactivity."

# Warnings
WARNING_PLAINTEXT_EXPORT = (
    "The decrypted export holds every secret in plain text. "
    "Store it somewhere safe and delete it when done."
)
WARNING_DELETE_VAULT = "This permanently destroys the vault at '{path}'."

# Console messages
CONSOLE_INTRO = "Coffer Console. Type 'help' for commands or 'quit' to exit."
CONSOLE_PROMPT = "coffer:{path}> "
