"""Email extractor — RFC 822 messages rendered as headers plus plain-text body."""

from __future__ import annotations

from email import policy
from email.message import EmailMessage
from email.parser import BytesParser

from sourcekb.extract.base import ExtractionRequest, ExtractionResult, Extractor, decode_text
from sourcekb.extract.text import normalize_text
from sourcekb.extract.web import html_to_text

_HEADER_FIELDS = ("Subject", "From", "To", "Date")


def _body_text(message: EmailMessage) -> str:
    part = message.get_body(preferencelist=("plain", "html"))
    if part is None:
        return ""
    content = part.get_content()
    if part.get_content_type() == "text/html":
        return html_to_text(content)[1]
    return content


class EmailExtractor(Extractor):
    """Render an email as a header block and its readable body.

    Attachment file names are recorded in metadata only; the attachments
    themselves arrive as separate document sources.
    """

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        try:
            data = self.load_raw(request)
        except Exception as exc:
            return ExtractionResult.failure(
                f"[Error reading content: {request.name}]", f"Could not read '{request.name}': {exc}"
            )

        message = BytesParser(policy=policy.default).parsebytes(data)
        if not message.keys() or not any(message.get(h) for h in ("From", "Subject")):
            # Not an RFC 822 payload (a pasted body, for instance).
            return ExtractionResult.success(normalize_text(decode_text(data)))

        header_lines = [f"{h}: {message[h]}" for h in _HEADER_FIELDS if message.get(h)]
        body = normalize_text(_body_text(message))
        attachments = [
            part.get_filename() for part in message.iter_attachments() if part.get_filename()
        ]

        metadata = {
            "from": str(message.get("From", "")),
            "subject": str(message.get("Subject", "")),
            "date": str(message.get("Date", "")),
        }
        if attachments:
            metadata["attachments"] = attachments

        return ExtractionResult.success("\n".join(header_lines) + "\n\n" + body, metadata=metadata)
