"""
Payout processor constants.

Defaults follow the behaviour of cryptonote pool payment processors:
- Payment ids are 8 or 32 bytes hex encoded (16 or 64 characters)
- Privacy settings are only sent once the chain reaches the fork version
  that introduced them
"""

from __future__ import annotations

# Accepted payment id lengths after stripping non-alphanumeric characters
PAYMENT_ID_LENGTHS = (16, 64)

# Separator between address and payment id in a worker login
DEFAULT_PAYMENT_ID_SEPARATOR = "+"

# Separator for the fixed difficulty suffix in a worker login (e.g. addr.5000)
DEFAULT_FIXED_DIFF_SEPARATOR = "."

# Hard fork version from which transfers accept tx_privacy_settings
PRIVACY_FORK_VERSION = 10

# Privacy setting values understood by the wallet
PRIVACY_PUBLIC = "public"
PRIVACY_PRIVATE = "private"

# Config value meaning "look up the setting per address in the ledger"
PRIVACY_PER_ADDRESS = "settings"

# Seconds between payout passes
DEFAULT_PAYMENT_INTERVAL = 600

# Number of characters kept on each side of a shortened address
DISPLAY_ADDRESS_CHARS = 7
