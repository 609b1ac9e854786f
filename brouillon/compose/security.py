"""Security state of the message being composed.

PGP, S/MIME and Autocrypt each want a say in whether the message is signed
or encrypted. SecurityStateEngine keeps their choices in one SecurityFlags
value and enforces that PGP and S/MIME are never active together.
"""

import logging

from brouillon.config import ComposeOptions, QuadOption

from .collaborators import CryptoBackend, Prompter
from .errors import CryptoBackendError
from .models import BodyPart, Email, Recommendation, SecurityFlags

logger = logging.getLogger(__name__)

ACTIONS = SecurityFlags.ENCRYPT | SecurityFlags.SIGN
PGP = SecurityFlags.APPLICATION_PGP
SMIME = SecurityFlags.APPLICATION_SMIME

AUTOCRYPT_PROMPT = "Autocrypt: (e)ncrypt, (c)lear, (a)utomatic?"
AUTOCRYPT_LETTERS = "eca"


class SecurityStateEngine:
    """Derive and update the security flags of a message.

    Example:
        engine = SecurityStateEngine(email, options, crypto, prompter)
        engine.recompute()       # after the recipients changed
        if engine.select_pgp():  # user opened the PGP menu
            ...
    """

    def __init__(
        self,
        email: Email,
        options: ComposeOptions,
        crypto: CryptoBackend,
        prompter: Prompter,
    ):
        self.email = email
        self.options = options
        self.crypto = crypto
        self.prompter = prompter
        self.recommendation = Recommendation.OFF

    @property
    def flags(self) -> SecurityFlags:
        return self.email.security

    def recompute(self) -> None:
        """Refresh the flags after the recipients or a security choice changed.

        Opportunistic encryption is asked to decide Encrypt/Sign first. With
        Autocrypt configured, any manual or opportunistic choice wins over
        Autocrypt; otherwise the recommendation turns Autocrypt on or off
        unless the user overrode it.
        """
        if self.options.get_bool("crypt_opportunistic_encrypt"):
            self._accept(self.crypto.opportunistic_encrypt(self.email))

        if not self.options.get_bool("autocrypt"):
            return

        self.recommendation = self.crypto.autocrypt_recommendation(self.email)
        flags = self.email.security

        if flags & (ACTIONS | SMIME):
            flags &= ~(SecurityFlags.AUTOCRYPT | SecurityFlags.AUTOCRYPT_OVERRIDE)
        elif not flags & SecurityFlags.AUTOCRYPT_OVERRIDE:
            if self.recommendation == Recommendation.YES:
                flags |= SecurityFlags.AUTOCRYPT | PGP
                flags &= ~(SecurityFlags.INLINE | SMIME)
            else:
                flags &= ~SecurityFlags.AUTOCRYPT

        self.email.security = flags

    def select_pgp(self) -> bool:
        """Handle the PGP menu.

        Returns:
            True if the flags changed.

        Raises:
            CryptoBackendError: No PGP backend, or it returned both schemes.
        """
        if not self.crypto.has_backend(PGP):
            raise CryptoBackendError("No PGP backend configured")

        old = self.email.security
        if not self._switch_application(SMIME, PGP, "S/MIME already selected. Clear and continue?"):
            return False

        self._accept(self.crypto.pgp_menu(self.email))
        self.recompute()
        return self.email.security != old

    def select_smime(self) -> bool:
        """Handle the S/MIME menu.

        Returns:
            True if the flags changed.

        Raises:
            CryptoBackendError: No S/MIME backend, or it returned both schemes.
        """
        if not self.crypto.has_backend(SMIME):
            raise CryptoBackendError("No S/MIME backend configured")

        old = self.email.security
        if not self._switch_application(PGP, SMIME, "PGP already selected. Clear and continue?"):
            return False

        self._accept(self.crypto.smime_menu(self.email))
        self.recompute()
        return self.email.security != old

    def select_autocrypt(self) -> bool:
        """Handle the Autocrypt menu: encrypt, clear or automatic.

        Does nothing unless the autocrypt option is on.

        Returns:
            True if the flags changed.
        """
        if not self.options.get_bool("autocrypt"):
            return False

        old = self.email.security
        if not self._switch_application(SMIME, PGP, "S/MIME already selected. Clear and continue?"):
            return False

        flags = self.email.security | PGP
        choice = self.prompter.multi_choice(AUTOCRYPT_PROMPT, AUTOCRYPT_LETTERS)
        if choice == 1:
            flags |= SecurityFlags.AUTOCRYPT | SecurityFlags.AUTOCRYPT_OVERRIDE
            flags &= ~(ACTIONS | SecurityFlags.OPPENCRYPT | SecurityFlags.INLINE)
        elif choice == 2:
            flags &= ~SecurityFlags.AUTOCRYPT
            flags |= SecurityFlags.AUTOCRYPT_OVERRIDE
        elif choice == 3:
            flags &= ~SecurityFlags.AUTOCRYPT_OVERRIDE
            if self.options.get_bool("crypt_opportunistic_encrypt"):
                flags |= SecurityFlags.OPPENCRYPT
        self.email.security = flags

        self.recompute()
        return self.email.security != old

    def finalize(self) -> None:
        """Drop the Autocrypt bit if Autocrypt was switched off meanwhile."""
        if not self.options.get_bool("autocrypt"):
            self.email.security &= ~SecurityFlags.AUTOCRYPT

    def _switch_application(
        self, current: SecurityFlags, target: SecurityFlags, prompt: str
    ) -> bool:
        """Move from one scheme to the other before opening a menu.

        Selected actions of the old scheme are dropped only after the user
        confirms. Autocrypt counts as a PGP action.

        Returns:
            False if the user declined; the flags are then untouched.
        """
        flags = self.email.security
        if not flags & current:
            return True

        in_use = ACTIONS
        if current == PGP:
            in_use |= SecurityFlags.AUTOCRYPT
        if flags & in_use:
            if self.prompter.yes_or_no(prompt, QuadOption.YES) != QuadOption.YES:
                return False
            flags &= ~in_use

        flags &= ~current
        flags |= target
        self.email.security = flags
        self.recompute()
        return True

    def _accept(self, flags: SecurityFlags) -> None:
        if flags & PGP and flags & SMIME:
            raise CryptoBackendError("Crypto backend selected both PGP and S/MIME")
        logger.debug("Security flags now %r", flags)
        self.email.security = flags


def security_summary(flags: SecurityFlags, opportunistic: bool = False) -> str:
    """Text of the Security: row, e.g. "Sign, Encrypt (PGP/MIME)"."""
    if flags & ACTIONS == ACTIONS:
        text = "Sign, Encrypt"
    elif flags & SecurityFlags.ENCRYPT:
        text = "Encrypt"
    elif flags & SecurityFlags.SIGN:
        text = "Sign"
    else:
        text = "None"

    if flags & ACTIONS:
        if flags & PGP:
            text += " (inline PGP)" if flags & SecurityFlags.INLINE else " (PGP/MIME)"
        elif flags & SMIME:
            text += " (S/MIME)"

    if opportunistic and flags & SecurityFlags.OPPENCRYPT:
        text += " (OppEnc mode)"
    return text


def sign_as_line(flags: SecurityFlags, options: ComposeOptions) -> str | None:
    """Text of the Sign as: row, None when nothing is signed."""
    if not flags & SecurityFlags.SIGN:
        return None
    if flags & PGP:
        return options.get_str("pgp_sign_as") or "<default>"
    if flags & SMIME:
        return options.get_str("smime_sign_as") or "<default>"
    return None


def encrypt_with_line(flags: SecurityFlags, options: ComposeOptions) -> str | None:
    """S/MIME cipher shown next to the Sign as: row."""
    if flags & SMIME and flags & SecurityFlags.ENCRYPT:
        return options.get_str("smime_encrypt_with") or None
    return None


def autocrypt_line(flags: SecurityFlags, recommendation: Recommendation) -> str:
    """Text of the Autocrypt: row with the current recommendation."""
    state = "Encrypt" if flags & SecurityFlags.AUTOCRYPT else "Off"
    return f"{state}    Recommendation: {recommendation.label}"


class UnavailableCrypto:
    """Crypto backend used when no PGP or S/MIME support is installed."""

    def has_backend(self, application: SecurityFlags) -> bool:
        return False

    def pgp_menu(self, email: Email) -> SecurityFlags:
        raise CryptoBackendError("No PGP backend configured")

    def smime_menu(self, email: Email) -> SecurityFlags:
        raise CryptoBackendError("No S/MIME backend configured")

    def opportunistic_encrypt(self, email: Email) -> SecurityFlags:
        return email.security

    def autocrypt_recommendation(self, email: Email) -> Recommendation:
        return Recommendation.OFF

    def make_key_attachment(self) -> BodyPart | None:
        raise CryptoBackendError("No PGP backend configured")

    def forget_passphrase(self) -> None:
        pass
