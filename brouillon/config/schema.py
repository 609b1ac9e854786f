"""Configuration schema definitions.

Uses TypedDict for type safety without runtime overhead.
These types match the structure of config.toml.
"""

from typing import TypedDict


class ComposeConfig(TypedDict, total=False):
    """Options read by the compose screen.

    Attributes:
        autocrypt: Enable the Autocrypt recommendation engine.
        crypt_opportunistic_encrypt: Let the crypto backend enable encryption
            when keys for every recipient are available.
        compose_show_user_headers: Show custom headers on the compose screen.
        x_comment_to: Show and edit the X-Comment-To field for news.
        edit_headers: Edit the headers together with the body in the editor.
        editor: External editor command.
        ispell: Spell checker command.
        copy: Quad option, keep a copy in the Fcc mailbox.
        postpone: Quad option, postpone the draft when leaving.
        pgp_sign_as: Key used for PGP signatures.
        smime_sign_as: Key used for S/MIME signatures.
        smime_encrypt_with: Cipher used for S/MIME encryption.
        compose_format: Status line format.
        folder: Default mailbox offered when attaching messages.
        postponed: Maildir receiving postponed drafts.
    """

    autocrypt: bool
    crypt_opportunistic_encrypt: bool
    compose_show_user_headers: bool
    x_comment_to: bool
    edit_headers: bool
    editor: str
    ispell: str
    copy: str
    postpone: str
    pgp_sign_as: str
    smime_sign_as: str
    smime_encrypt_with: str
    compose_format: str
    folder: str
    postponed: str


class BrouillonConfig(TypedDict, total=False):
    """Root configuration structure.

    Attributes:
        compose: Options for the compose screen.
    """

    compose: ComposeConfig
