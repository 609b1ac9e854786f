"""The compose screen's main loop.

ComposeController owns the message being composed while the screen is
open. It reads one operation at a time from the presentation collaborator,
checks the operation's guards, runs its handler and marks which screen
regions need repainting. It leaves the loop with one of three outcomes:
send, postpone or abort.

Operations are looked up in HANDLERS, a table of op -> (guards, handler
name). Guards return an error instead of raising so the dispatcher can
report it and skip the handler; handlers raise ComposeError, which the
dispatcher reports in the same way. Either way the loop keeps running.

Usage:
    controller = ComposeController(email, ui=session, prompter=session, editor=editor)
    result = controller.run()
    if result is ComposeResult.SEND:
        ...
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, IntEnum, IntFlag
from pathlib import Path

from brouillon import __version__
from brouillon.config import ComposeOptions, QuadOption, query_quadoption
from brouillon.config.paths import expand_path, pretty_path
from brouillon.storage.maildir import MaildirBrowser, save_to_maildir

from .assemble import message_bytes
from .attachments import AttachmentTree
from .collaborators import CryptoBackend, Editor, Hook, MailboxBrowser, Presentation, Prompter
from .errors import (
    AttachmentPinnedError,
    AttachmentPositionError,
    AttachmentResourceError,
    BadIdnError,
    ComposeError,
    InsufficientTaggedItemsError,
    MailboxError,
    NoAttachmentsError,
    NotTextPartError,
)
from .headers import (
    ADDRESS_HEADERS,
    check_idn,
    edit_headers,
    format_address_list,
    parse_address_text,
    set_user_header,
    to_local,
)
from .layout import (
    EnvelopeLayout,
    HeaderField,
    HeaderPadding,
    compute_header_padding,
    format_status,
    measure_envelope,
)
from .mime import (
    attachments_size,
    check_encoding,
    create_file,
    get_tmp_attachment,
    is_stale,
    is_text_part,
    make_file_attach,
    make_message_attach,
    parse_content_type,
    rename_backing_file,
    stamp_attachment,
    update_encoding,
)
from .models import AttachmentNode, BodyPart, Disposition, Email
from .security import (
    SecurityStateEngine,
    UnavailableCrypto,
    autocrypt_line,
    security_summary,
    sign_as_line,
)

logger = logging.getLogger(__name__)


class Op(str, Enum):
    """Operations the compose screen understands."""

    EDIT_FROM = "edit-from"
    EDIT_TO = "edit-to"
    EDIT_CC = "edit-cc"
    EDIT_BCC = "edit-bcc"
    EDIT_SUBJECT = "edit-subject"
    EDIT_REPLY_TO = "edit-reply-to"
    EDIT_FCC = "edit-fcc"
    EDIT_NEWSGROUPS = "edit-newsgroups"
    EDIT_FOLLOWUP_TO = "edit-followup-to"
    EDIT_X_COMMENT_TO = "edit-x-comment-to"
    EDIT_HEADER = "edit-header"
    EDIT_MESSAGE = "edit-message"
    EDIT_HEADERS = "edit-headers"
    ATTACH_FILE = "attach-file"
    ATTACH_MESSAGE = "attach-message"
    ATTACH_KEY = "attach-key"
    NEW_MIME = "new-mime"
    DELETE = "delete"
    MOVE_UP = "move-up"
    MOVE_DOWN = "move-down"
    GROUP_ALTERNATIVES = "group-alternatives"
    GROUP_MULTILINGUAL = "group-multilingual"
    TOGGLE_DISPOSITION = "toggle-disposition"
    TOGGLE_RECODE = "toggle-recode"
    TOGGLE_UNLINK = "toggle-unlink"
    TAG = "tag"
    COLLAPSE = "collapse"
    EDIT_DESCRIPTION = "edit-description"
    EDIT_LANGUAGE = "edit-language"
    EDIT_TYPE = "edit-type"
    EDIT_ENCODING = "edit-encoding"
    RENAME_ATTACHMENT = "rename-attachment"
    RENAME_FILE = "rename-file"
    UPDATE_ENCODING = "update-encoding"
    EDIT_FILE = "edit-file"
    EDIT_MIME = "edit-mime"
    GET_ATTACHMENT = "get-attachment"
    VIEW_ATTACHMENT = "view-attachment"
    WRITE_MESSAGE = "write-message"
    ISPELL = "ispell"
    PGP_MENU = "pgp-menu"
    SMIME_MENU = "smime-menu"
    AUTOCRYPT_MENU = "autocrypt-menu"
    FORGET_PASSPHRASE = "forget-passphrase"
    NEXT = "next"
    PREVIOUS = "previous"
    SEND = "send"
    POSTPONE = "postpone"
    EXIT = "exit"


class Redraw(IntFlag):
    """Screen regions that are stale after an operation."""

    NONE = 0
    FULL = 1 << 0
    STATUS = 1 << 1
    INDEX = 1 << 2  # the attachment list
    CURRENT = 1 << 3  # the selected attachment's row
    MOTION = 1 << 4  # only the cursor moved
    FLOW = 1 << 5  # envelope rows were re-measured


class ComposeResult(IntEnum):
    """How the compose screen was left."""

    SEND = 0
    ABORT = -1
    POSTPONE = 1


@dataclass
class ComposeView:
    """Snapshot handed to the presentation collaborator for drawing."""

    email: Email
    attachments: AttachmentTree
    current: int  # visible position of the cursor
    fcc: str
    layout: EnvelopeLayout
    padding: HeaderPadding
    security: str
    sign_as: str | None
    autocrypt: str | None
    status: str
    news: bool = False


# --- Guards ---

Guard = Callable[["ComposeController"], ComposeError | None]


def require_attachments(controller: "ComposeController") -> ComposeError | None:
    if len(controller.tree) == 0:
        return NoAttachmentsError()
    return None


def require_two_tagged(kind: str) -> Guard:
    """Guard for grouping operations: at least two attachments tagged."""

    def guard(controller: "ComposeController") -> ComposeError | None:
        if len(controller.tree.tagged_indices()) < 2:
            return InsufficientTaggedItemsError(kind)
        return None

    return guard


NEEDS_ATTACHMENT = (require_attachments,)

# op -> (guards, handler method)
HANDLERS: dict[Op, tuple[tuple[Guard, ...], str]] = {
    Op.EDIT_FROM: ((), "_edit_from"),
    Op.EDIT_TO: ((), "_edit_to"),
    Op.EDIT_CC: ((), "_edit_cc"),
    Op.EDIT_BCC: ((), "_edit_bcc"),
    Op.EDIT_SUBJECT: ((), "_edit_subject"),
    Op.EDIT_REPLY_TO: ((), "_edit_reply_to"),
    Op.EDIT_FCC: ((), "_edit_fcc"),
    Op.EDIT_NEWSGROUPS: ((), "_edit_newsgroups"),
    Op.EDIT_FOLLOWUP_TO: ((), "_edit_followup_to"),
    Op.EDIT_X_COMMENT_TO: ((), "_edit_x_comment_to"),
    Op.EDIT_HEADER: ((), "_edit_header"),
    Op.EDIT_MESSAGE: (NEEDS_ATTACHMENT, "_edit_message"),
    Op.EDIT_HEADERS: (NEEDS_ATTACHMENT, "_edit_headers"),
    Op.ATTACH_FILE: ((), "_attach_file"),
    Op.ATTACH_MESSAGE: ((), "_attach_message"),
    Op.ATTACH_KEY: ((), "_attach_key"),
    Op.NEW_MIME: ((), "_new_mime"),
    Op.DELETE: (NEEDS_ATTACHMENT, "_delete"),
    Op.MOVE_UP: (NEEDS_ATTACHMENT, "_move_up"),
    Op.MOVE_DOWN: (NEEDS_ATTACHMENT, "_move_down"),
    Op.GROUP_ALTERNATIVES: ((require_two_tagged("alternatives"),), "_group_alternatives"),
    Op.GROUP_MULTILINGUAL: ((require_two_tagged("multilingual"),), "_group_multilingual"),
    Op.TOGGLE_DISPOSITION: (NEEDS_ATTACHMENT, "_toggle_disposition"),
    Op.TOGGLE_RECODE: (NEEDS_ATTACHMENT, "_toggle_recode"),
    Op.TOGGLE_UNLINK: (NEEDS_ATTACHMENT, "_toggle_unlink"),
    Op.TAG: (NEEDS_ATTACHMENT, "_tag"),
    Op.COLLAPSE: (NEEDS_ATTACHMENT, "_collapse"),
    Op.EDIT_DESCRIPTION: (NEEDS_ATTACHMENT, "_edit_description"),
    Op.EDIT_LANGUAGE: (NEEDS_ATTACHMENT, "_edit_language"),
    Op.EDIT_TYPE: (NEEDS_ATTACHMENT, "_edit_type"),
    Op.EDIT_ENCODING: (NEEDS_ATTACHMENT, "_edit_encoding"),
    Op.RENAME_ATTACHMENT: (NEEDS_ATTACHMENT, "_rename_attachment"),
    Op.RENAME_FILE: (NEEDS_ATTACHMENT, "_rename_file"),
    Op.UPDATE_ENCODING: (NEEDS_ATTACHMENT, "_update_encoding"),
    Op.EDIT_FILE: (NEEDS_ATTACHMENT, "_edit_file"),
    Op.EDIT_MIME: (NEEDS_ATTACHMENT, "_edit_mime"),
    Op.GET_ATTACHMENT: (NEEDS_ATTACHMENT, "_get_attachment"),
    Op.VIEW_ATTACHMENT: (NEEDS_ATTACHMENT, "_view_attachment"),
    Op.WRITE_MESSAGE: (NEEDS_ATTACHMENT, "_write_message"),
    Op.ISPELL: (NEEDS_ATTACHMENT, "_ispell"),
    Op.PGP_MENU: ((), "_pgp_menu"),
    Op.SMIME_MENU: ((), "_smime_menu"),
    Op.AUTOCRYPT_MENU: ((), "_autocrypt_menu"),
    Op.FORGET_PASSPHRASE: ((), "_forget_passphrase"),
    Op.NEXT: ((), "_next"),
    Op.PREVIOUS: ((), "_previous"),
    Op.SEND: ((), "_send"),
    Op.POSTPONE: ((), "_postpone"),
    Op.EXIT: ((), "_exit"),
}


class ComposeController:
    """Run the compose screen for one message.

    Example:
        controller = ComposeController(
            email, ui=session, prompter=session, editor=ExternalEditor(options)
        )
        result = controller.run()
    """

    def __init__(
        self,
        email: Email,
        *,
        ui: Presentation,
        prompter: Prompter,
        editor: Editor,
        crypto: CryptoBackend | None = None,
        options: ComposeOptions | None = None,
        tree: AttachmentTree | None = None,
        fcc: str = "",
        hook: Hook | None = None,
        browser: MailboxBrowser | None = None,
        news: bool = False,
        no_free_header: bool = False,
        columns: int = 80,
        padding: HeaderPadding | None = None,
    ):
        """Set up a compose session.

        Args:
            email: The message; email.body heads its body chain.
            ui: Draws the screen and reads operations.
            prompter: Asks the user for text and confirmations.
            editor: Runs external editors and the spell checker.
            crypto: PGP/S-MIME/Autocrypt backend. Defaults to none.
            options: Option store. Defaults to the configuration file.
            tree: Prepared attachment list (e.g. with unowned files marked).
                Built from email.body when omitted.
            fcc: Initial Fcc mailbox.
            hook: Called with the message after each change.
            browser: Opens mailboxes for attach-message.
            news: Compose a news article instead of a mail.
            no_free_header: Keep the attachments when the user aborts.
            columns: Width of the envelope window.
            padding: Label padding, computed once per session.
        """
        self.email = email
        self.ui = ui
        self.prompter = prompter
        self.editor = editor
        self.crypto = crypto if crypto is not None else UnavailableCrypto()
        self.options = options if options is not None else ComposeOptions()
        self.tree = tree if tree is not None else AttachmentTree.from_body(email.body)
        self.fcc = fcc
        self.fcc_set = False
        self.hook = hook
        self.browser = browser if browser is not None else MaildirBrowser()
        self.news = news
        self.no_free_header = no_free_header
        self.columns = columns
        self.padding = padding if padding is not None else compute_header_padding()

        self.security = SecurityStateEngine(email, self.options, self.crypto, prompter)
        self.current = 0
        self.redraw = Redraw.FULL
        self.layout: EnvelopeLayout | None = None
        self._tag_prefix = False

    # --- Loop ---

    def run(self) -> ComposeResult:
        """Read and dispatch operations until the message is sent,
        postponed or discarded."""
        self.security.recompute()
        self._reflow()
        self.redraw = Redraw.FULL

        result = None
        while result is None:
            self.ui.render(self.view(), self.redraw)
            self.redraw = Redraw.NONE
            op, tag_prefix = self.ui.read_op()
            result = self.dispatch(op, tag_prefix)

        return self._finish(result)

    def dispatch(self, op: Op, tag_prefix: bool = False) -> ComposeResult | None:
        """Run one operation.

        Returns:
            The outcome when the operation ends the session, else None.
        """
        logger.debug("Got op %s", op.value)
        guards, handler = HANDLERS[op]
        for guard in guards:
            error = guard(self)
            if error is not None:
                self.ui.error(str(error))
                return None

        self._tag_prefix = tag_prefix
        try:
            return getattr(self, handler)()
        except ComposeError as e:
            logger.debug("%s failed: %s", op.value, e)
            self.ui.error(str(e))
            return None

    def view(self) -> ComposeView:
        if self.layout is None:
            self._reflow()
        flags = self.email.security
        autocrypt = None
        if self.options.get_bool("autocrypt"):
            autocrypt = autocrypt_line(flags, self.security.recommendation)

        return ComposeView(
            email=self.email,
            attachments=self.tree,
            current=self.current,
            fcc=pretty_path(self.fcc),
            layout=self.layout,
            padding=self.padding,
            security=security_summary(
                flags, self.options.get_bool("crypt_opportunistic_encrypt")
            ),
            sign_as=sign_as_line(flags, self.options),
            autocrypt=autocrypt,
            status=format_status(
                self.options.get_str("compose_format"),
                attachments=len(self.tree),
                size=attachments_size(self.tree.nodes),
                version=__version__,
            ),
            news=self.news,
        )

    @property
    def current_index(self) -> int:
        """Index into the node list of the attachment under the cursor."""
        return self.tree.real_index(self.current)

    @property
    def current_node(self) -> AttachmentNode:
        return self.tree[self.current_index]

    def _finish(self, result: ComposeResult) -> ComposeResult:
        self.email.body = self.tree.root
        self.security.finalize()
        logger.debug("Leaving compose screen: %s", result.name)
        return result

    # --- Shared steps ---

    def _notify(self) -> None:
        """Publish the changed message to the post-edit hook."""
        self.email.body = self.tree.root
        if self.hook is not None:
            self.hook(self.email)

    def _reflow(self) -> None:
        self.layout = measure_envelope(
            self.email.envelope,
            self.email.security,
            max(self.columns - self.padding.max_width, 1),
            news=self.news,
            x_comment_to=self.options.get_bool("x_comment_to"),
            autocrypt=self.options.get_bool("autocrypt"),
            show_user_headers=self.options.get_bool("compose_show_user_headers"),
        )
        self.redraw |= Redraw.FLOW

    def _select(self, index: int) -> None:
        """Put the cursor on a node, or the nearest visible one above it."""
        if not self.tree.nodes:
            self.current = 0
            return
        index = max(0, min(index, len(self.tree) - 1))
        while index > 0 and self.tree.visible_index(index) is None:
            index -= 1
        self.current = self.tree.visible_index(index) or 0

    def _add_attachment(self, node: AttachmentNode) -> None:
        index = self.tree.add(node)
        self._select(index)
        self.redraw |= Redraw.INDEX | Redraw.STATUS

    def _selected_nodes(self) -> list[AttachmentNode]:
        """Tagged attachments with the tag prefix, else the current one."""
        if self._tag_prefix:
            return [self.tree[i] for i in self.tree.tagged_indices()]
        return [self.current_node]

    def _check_attachments(self) -> bool:
        """Make sure every backing file still exists and is encoded.

        Returns:
            False if a file is missing or the user cancelled.
        """
        for i, node in enumerate(self.tree):
            body = node.body
            if body.is_multipart:
                continue
            pretty = pretty_path(body.filename or "")
            try:
                stale = is_stale(body)
            except AttachmentResourceError:
                self.ui.error(f"Attachment #{i + 1} no longer exists: {pretty}")
                return False

            if stale:
                answer = self.prompter.yes_or_no(
                    f"Attachment #{i + 1} modified. Update encoding for {pretty}?",
                    QuadOption.YES,
                )
                if answer == QuadOption.YES:
                    update_encoding(body)
                elif answer == QuadOption.ABORT:
                    return False
        return True

    # --- Envelope ---

    def _edit_addresses(self, field: HeaderField, attr: str, *, recompute: bool = True) -> None:
        envelope = self.email.envelope
        old = getattr(envelope, attr)
        text = self.prompter.get_field(
            field.prompt, format_address_list([to_local(a) for a in old])
        )
        if text is None:
            return

        addresses = check_idn(parse_address_text(text))
        if addresses == old:
            return

        setattr(envelope, attr, addresses)
        if recompute:
            self.security.recompute()
        self._reflow()
        self._notify()

    def _edit_from(self) -> None:
        self._edit_addresses(HeaderField.FROM, "from_addrs")

    def _edit_to(self) -> None:
        if not self.news:
            self._edit_addresses(HeaderField.TO, "to")

    def _edit_cc(self) -> None:
        if not self.news:
            self._edit_addresses(HeaderField.CC, "cc")

    def _edit_bcc(self) -> None:
        if not self.news:
            self._edit_addresses(HeaderField.BCC, "bcc")

    def _edit_reply_to(self) -> None:
        self._edit_addresses(HeaderField.REPLY_TO, "reply_to", recompute=False)

    def _edit_text(self, field: HeaderField, attr: str) -> None:
        envelope = self.email.envelope
        old = getattr(envelope, attr) or ""
        text = self.prompter.get_field(field.prompt, old)
        if text is None or text == old:
            return
        setattr(envelope, attr, text or None)
        self._reflow()
        self._notify()

    def _edit_subject(self) -> None:
        self._edit_text(HeaderField.SUBJECT, "subject")

    def _edit_newsgroups(self) -> None:
        if self.news:
            self._edit_text(HeaderField.NEWSGROUPS, "newsgroups")

    def _edit_followup_to(self) -> None:
        if self.news:
            self._edit_text(HeaderField.FOLLOWUP_TO, "followup_to")

    def _edit_x_comment_to(self) -> None:
        if self.news and self.options.get_bool("x_comment_to"):
            self._edit_text(HeaderField.X_COMMENT_TO, "x_comment_to")

    def _edit_fcc(self) -> None:
        old = pretty_path(self.fcc)
        text = self.prompter.get_field(HeaderField.FCC.prompt, old)
        if text is None:
            return
        text = pretty_path(text.strip())
        if text == old:
            return
        self.fcc = text
        self.fcc_set = True
        self._reflow()
        self._notify()

    def _edit_header(self) -> None:
        text = self.prompter.get_field(HeaderField.CUSTOM_HEADERS.prompt)
        if not text:
            return
        envelope = self.email.envelope
        headers = set_user_header(envelope.user_headers, text)
        if headers == envelope.user_headers:
            return
        envelope.user_headers = headers
        self._reflow()
        self._notify()

    # --- Message body ---

    def _main_text_part(self) -> BodyPart:
        """The part holding the typed text: the first leaf under the root."""
        body = self.tree.root
        while body.type == "multipart" and body.parts is not None:
            body = body.parts
        if not body.filename:
            raise AttachmentResourceError("The current attachment has no file")
        return body

    def _edit_message(self) -> None:
        if self.options.get_bool("edit_headers"):
            self._edit_headers()
            return

        body = self._main_text_part()
        self.editor.edit_file(body.filename)
        update_encoding(body)
        self.redraw |= Redraw.FULL
        self._notify()

    def _edit_headers(self) -> None:
        body = self._main_text_part()
        envelope = self.email.envelope
        edit = edit_headers(
            body.filename, envelope, self.fcc, self.editor.edit_file, news=self.news
        )

        for header, attr in ADDRESS_HEADERS:
            try:
                setattr(envelope, attr, check_idn(getattr(envelope, attr)))
            except BadIdnError as e:
                self.ui.error(f"Bad IDN in '{header}': '{e.address}'")

        if edit.fcc is not None:
            self.fcc = pretty_path(edit.fcc)

        for path, description in edit.attachments:
            try:
                part = make_file_attach(path)
            except AttachmentResourceError as e:
                self.ui.error(str(e))
                continue
            part.description = description
            self.tree.add(AttachmentNode(body=part, unowned=True))

        self.security.recompute()
        update_encoding(body)
        self._reflow()
        self.redraw |= Redraw.FULL
        self._notify()

    def _ispell(self) -> None:
        body = self._main_text_part()
        command = self.options.get_str("ispell")
        if not self.editor.spell_check(command, body.filename):
            self.ui.error(f'Error running "{command} -x {body.filename}"')
            return
        update_encoding(body)
        self.redraw |= Redraw.STATUS
        self._notify()

    # --- Adding attachments ---

    def _attach_file(self) -> None:
        files = self.prompter.select_files("Attach file")
        if not files:
            return

        if len(files) > 1:
            self.ui.message("Attaching selected files...")

        added = False
        for path in files:
            try:
                body = make_file_attach(path)
            except AttachmentResourceError as e:
                self.ui.error(str(e))
                continue
            self._add_attachment(AttachmentNode(body=body, unowned=True))
            added = True

        self.redraw |= Redraw.INDEX | Redraw.STATUS
        if added:
            self._notify()

    def _attach_message(self) -> None:
        path = self.prompter.enter_mailbox(
            "Open mailbox to attach message from", self.options.get_str("folder")
        )
        if not path:
            return

        mailbox = expand_path(path)
        if not self.browser.is_readable(mailbox):
            raise MailboxError(f"Unable to open mailbox {pretty_path(str(mailbox))}")

        messages = self.browser.open_readonly(mailbox)
        self.redraw |= Redraw.FULL
        if not messages:
            raise MailboxError("No messages in that folder")

        self.ui.message("Tag the messages you want to attach")
        added = False
        for summary in self.prompter.select_messages(messages):
            try:
                body = make_message_attach(summary)
            except AttachmentResourceError:
                self.ui.error("Unable to attach")
                continue
            self._add_attachment(AttachmentNode(body=body))
            added = True

        if added:
            self._notify()

    def _attach_key(self) -> None:
        body = self.crypto.make_key_attachment()
        self.redraw |= Redraw.STATUS
        if body is None:
            return
        self._add_attachment(AttachmentNode(body=body))
        self._notify()

    def _new_mime(self) -> None:
        name = self.prompter.get_field("New file: ")
        if not name:
            return
        text = self.prompter.get_field("Content-Type: ")
        if not text:
            return

        major, minor, parameters = parse_content_type(text)
        path = create_file(expand_path(name))
        body = make_file_attach(path)
        body.type, body.subtype = major, minor
        body.parameters = parameters
        body.unlink = True
        self._add_attachment(AttachmentNode(body=body))

        if self.editor.compose_attachment(body):
            update_encoding(body)
            self.redraw |= Redraw.FULL
        self._notify()

    # --- Rearranging attachments ---

    def _delete(self) -> None:
        index = self.current_index
        allow_root = False
        if index == 0 and self.tree.subtree_end(0) < len(self.tree):
            answer = self.prompter.yes_or_no("Delete the fundamental part?", QuadOption.NO)
            if answer != QuadOption.YES:
                return
            allow_root = True

        self.tree.delete(index, allow_root=allow_root)
        self._select(index)
        self.redraw |= Redraw.INDEX | Redraw.STATUS
        self._notify()

    def _move_up(self) -> None:
        index = self.current_index
        if index == 0:
            raise AttachmentPinnedError()
        previous = self.tree.previous_sibling(index)
        if previous is None:
            raise AttachmentPositionError("Attachment is already at top")

        # Swapping with the previous sibling moves this node into its place
        self.tree.swap_adjacent(previous)
        self._select(previous)
        self.redraw |= Redraw.INDEX
        self._notify()

    def _move_down(self) -> None:
        new_index = self.tree.swap_adjacent(self.current_index)
        self._select(new_index)
        self.redraw |= Redraw.INDEX
        self._notify()

    def _group_alternatives(self) -> None:
        first = self.tree.group("alternative", self.tree.tagged_indices())
        self._select(first)
        self.redraw |= Redraw.INDEX | Redraw.STATUS
        self._notify()

    def _group_multilingual(self) -> None:
        indices = self.tree.tagged_indices()
        if any(not self.tree[i].body.language for i in indices):
            answer = self.prompter.yes_or_no(
                "Not all parts have 'Content-Language' set, continue?", QuadOption.YES
            )
            if answer != QuadOption.YES:
                self.ui.message("Not sending this message")
                return

        first = self.tree.group("multilingual", indices)
        self._select(first)
        self.redraw |= Redraw.INDEX | Redraw.STATUS
        self._notify()

    # --- Attachment flags ---

    def _toggle_disposition(self) -> None:
        body = self.current_node.body
        if body.disposition is Disposition.INLINE:
            body.disposition = Disposition.ATTACHMENT
        else:
            body.disposition = Disposition.INLINE
        self.redraw |= Redraw.CURRENT
        self._notify()

    def _toggle_recode(self) -> None:
        body = self.current_node.body
        if not is_text_part(body):
            raise NotTextPartError()
        body.noconv = not body.noconv
        if body.noconv:
            self.ui.message("The current attachment won't be converted")
        else:
            self.ui.message("The current attachment will be converted")
        self.redraw |= Redraw.CURRENT
        self._notify()

    def _toggle_unlink(self) -> None:
        body = self.current_node.body
        body.unlink = not body.unlink
        self.redraw |= Redraw.INDEX
        self._notify()

    def _tag(self) -> None:
        node = self.current_node
        node.tagged = not node.tagged
        self.redraw |= Redraw.CURRENT

    def _collapse(self) -> None:
        index = self.current_index
        if self.tree.toggle_collapse(index):
            self._select(index)
            self.redraw |= Redraw.INDEX

    # --- Attachment fields ---

    def _edit_description(self) -> None:
        body = self.current_node.body
        old = body.description or ""
        text = self.prompter.get_field("Description: ", old)
        if text is None or text == old:
            return
        body.description = text or None
        self.redraw |= Redraw.CURRENT
        self._notify()

    def _edit_language(self) -> None:
        body = self.current_node.body
        old = body.language or ""
        text = self.prompter.get_field("Content-Language: ", old)
        if not text:
            self.ui.message("Empty 'Content-Language'")
            return
        if text == old:
            return
        body.language = text
        self.redraw |= Redraw.CURRENT | Redraw.STATUS
        self._notify()

    def _edit_type(self) -> None:
        body = self.current_node.body
        shown = {k: v for k, v in body.parameters.items() if k != "boundary"}
        old = "; ".join([body.content_type, *(f"{k}={v}" for k, v in shown.items())])
        text = self.prompter.get_field("Content-Type: ", old)
        if not text:
            return

        major, minor, parameters = parse_content_type(text)
        if major == "multipart" and "boundary" in body.parameters:
            parameters.setdefault("boundary", body.parameters["boundary"])
        if (major, minor, parameters) == (body.type, body.subtype, body.parameters):
            return

        body.type, body.subtype = major, minor
        body.parameters = parameters
        # A change to text/* needs a charset and maybe another encoding
        update_encoding(body)
        self.redraw |= Redraw.CURRENT
        self._notify()

    def _edit_encoding(self) -> None:
        body = self.current_node.body
        text = self.prompter.get_field("Content-Transfer-Encoding: ", body.encoding.value)
        if not text:
            return
        encoding = check_encoding(text)
        if encoding is body.encoding:
            return
        body.encoding = encoding
        self.redraw |= Redraw.CURRENT | Redraw.STATUS
        self._notify()

    def _rename_attachment(self) -> None:
        body = self.current_node.body
        source = body.d_filename or body.filename or ""
        old = Path(source).name if source else ""
        text = self.prompter.get_field("Send attachment with name: ", old)
        if text is None or text == old:
            return
        # An empty name clears it; the file's own name is sent instead
        body.d_filename = text or None
        self.redraw |= Redraw.CURRENT
        self._notify()

    def _rename_file(self) -> None:
        body = self.current_node.body
        if body.filename is None:
            raise AttachmentResourceError("The current attachment has no file")

        text = self.prompter.get_field("Rename to: ", pretty_path(body.filename))
        if not text:
            return
        new_path = expand_path(text)
        if str(new_path) == body.filename:
            return

        try:
            mtime = os.stat(body.filename).st_mtime
        except OSError as e:
            raise AttachmentResourceError(
                f"Can't stat {text}: {e.strerror}", body.filename
            ) from e

        rename_backing_file(body, new_path)
        if body.stamp >= mtime:
            stamp_attachment(body)
        self.redraw |= Redraw.CURRENT
        self._notify()

    # --- Backing files and external programs ---

    def _update_encoding(self) -> None:
        nodes = self._selected_nodes()
        for node in nodes:
            update_encoding(node.body)
        self.redraw |= Redraw.FULL if self._tag_prefix else Redraw.CURRENT | Redraw.STATUS
        if nodes:
            self._notify()

    def _edit_file(self) -> None:
        body = self.current_node.body
        if body.filename is None:
            raise AttachmentResourceError("The current attachment has no file")
        self.editor.edit_file(body.filename)
        update_encoding(body)
        self.redraw |= Redraw.CURRENT | Redraw.STATUS
        self._notify()

    def _edit_mime(self) -> None:
        body = self.current_node.body
        if self.editor.edit_attachment(body):
            update_encoding(body)
            self.redraw |= Redraw.FULL
            self._notify()

    def _get_attachment(self) -> None:
        for node in self._selected_nodes():
            source = node.body.filename
            get_tmp_attachment(node.body)
            if node.body.filename != source:
                # The private copy is ours to remove
                node.unowned = False
        self.redraw |= Redraw.FULL if self._tag_prefix else Redraw.CURRENT

    def _view_attachment(self) -> None:
        self.ui.view_attachment(self.current_node.body)
        self.redraw |= Redraw.FULL

    def _write_message(self) -> None:
        path = self.prompter.enter_mailbox("Write message to mailbox")
        if not path:
            return

        self.ui.message(f"Writing message to {path} ...")
        self.email.body = self.tree.root
        data = message_bytes(self.email, include_bcc=True)
        try:
            save_to_maildir(expand_path(path), data)
        except OSError as e:
            raise MailboxError(f"Can't write to {path}: {e.strerror}") from e
        self.ui.message("Message written")

    # --- Security ---

    def _after_security_change(self, changed: bool) -> None:
        if changed:
            self._reflow()
            self.redraw |= Redraw.FULL
            self._notify()

    def _pgp_menu(self) -> None:
        self._after_security_change(self.security.select_pgp())

    def _smime_menu(self) -> None:
        self._after_security_change(self.security.select_smime())

    def _autocrypt_menu(self) -> None:
        self._after_security_change(self.security.select_autocrypt())

    def _forget_passphrase(self) -> None:
        self.crypto.forget_passphrase()

    # --- Cursor ---

    def _next(self) -> None:
        if self.current >= len(self.tree.visible) - 1:
            self.ui.message("You are on the last entry.")
            return
        self.current += 1
        self.redraw |= Redraw.MOTION

    def _previous(self) -> None:
        if self.current == 0:
            self.ui.message("You are on the first entry.")
            return
        self.current -= 1
        self.redraw |= Redraw.MOTION

    # --- Leaving ---

    def _send(self) -> ComposeResult | None:
        if not self._check_attachments():
            self.redraw |= Redraw.FULL
            return None

        if not self.fcc_set and self.fcc:
            answer = query_quadoption(
                self.options.get_quad("copy"), "Save a copy of this message?", self.prompter
            )
            if answer == QuadOption.ABORT:
                return None
            if answer == QuadOption.NO:
                self.fcc = ""

        return ComposeResult.SEND

    def _postpone(self) -> ComposeResult | None:
        if not self._check_attachments():
            self.redraw |= Redraw.FULL
            return None
        return ComposeResult.POSTPONE

    def _exit(self) -> ComposeResult | None:
        answer = query_quadoption(
            self.options.get_quad("postpone"), "Save (postpone) draft message?", self.prompter
        )
        if answer == QuadOption.ABORT:
            return None
        if answer == QuadOption.YES:
            return self._postpone()

        for node in self.tree:
            if node.unowned:
                node.body.unlink = False
        if not self.no_free_header:
            self.tree.release()
        return ComposeResult.ABORT
