"""Default configuration template.

This template is written to ~/.config/brouillon/config.toml
when running `brouillon config init`.
"""

CONFIG_TEMPLATE = """\
# Brouillon Configuration

[compose]
# Quad options accept "yes", "no", "ask-yes" or "ask-no".
copy = "yes"
postpone = "ask-yes"

compose_show_user_headers = true
edit_headers = false
x_comment_to = false

# Leave empty to use $VISUAL or $EDITOR.
editor = ""
ispell = "ispell"

folder = "~/Mail"
postponed = "~/Mail/Drafts"

# Security
crypt_opportunistic_encrypt = false
autocrypt = false
# pgp_sign_as = "0xDEADBEEF"
# smime_sign_as = ""
# smime_encrypt_with = "aes256"

compose_format = "-- Brouillon: Compose  [Approx. msg size: %l   Atts: %a]"
"""
