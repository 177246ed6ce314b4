"""
Request Schemas
===============

Accepted shapes of tool requests, validated before any network call, and
their compilation to imapclient search criteria and FETCH data items.

``SearchQuery`` is self-referential through ``or``: each node is an AND of
its own criteria, and ``or`` lists alternative nodes of the same shape.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

# Bounds validation and search cost for caller-supplied ``or`` trees.
MAX_QUERY_DEPTH = 10

_FLAG_TERMS = {
    "answered": "ANSWERED",
    "deleted": "DELETED",
    "draft": "DRAFT",
    "flagged": "FLAGGED",
    "seen": "SEEN",
}

_STATE_TERMS = {
    "all": "ALL",
    "new": "NEW",
    "old": "OLD",
    "recent": "RECENT",
}

_TEXT_TERMS = {
    "from_": "FROM",
    "to": "TO",
    "cc": "CC",
    "bcc": "BCC",
    "body": "BODY",
    "subject": "SUBJECT",
    "keyword": "KEYWORD",
    "un_keyword": "UNKEYWORD",
}

_NUMBER_TERMS = {
    "larger": "LARGER",
    "smaller": "SMALLER",
    "modseq": "MODSEQ",
}

_ID_TERMS = {
    "uid": "UID",
    "email_id": "X-GM-MSGID",
    "thread_id": "X-GM-THRID",
}

_DATE_TERMS = {
    "before": "BEFORE",
    "on": "ON",
    "since": "SINCE",
    "sent_before": "SENTBEFORE",
    "sent_on": "SENTON",
    "sent_since": "SENTSINCE",
}


class SearchQuery(BaseModel):
    """One node of a mailbox search tree."""

    model_config = ConfigDict(populate_by_name=True)

    seq: str | None = Field(default=None, description="Sequence set, e.g. '1:10'.")
    answered: bool | None = None
    deleted: bool | None = None
    draft: bool | None = None
    flagged: bool | None = None
    seen: bool | None = None
    all: bool | None = None
    new: bool | None = None
    old: bool | None = None
    recent: bool | None = None
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    body: str | None = None
    subject: str = Field(..., min_length=1)
    larger: PositiveInt | None = None
    smaller: PositiveInt | None = None
    uid: str | None = Field(default=None, description="UID set, e.g. '100:*'.")
    modseq: int | None = Field(default=None, ge=0)
    email_id: str | None = Field(default=None, alias="emailId")
    thread_id: str | None = Field(default=None, alias="threadId")
    before: date | None = None
    on: date | None = None
    since: date | None = None
    sent_before: date | None = Field(default=None, alias="sentBefore")
    sent_on: date | None = Field(default=None, alias="sentOn")
    sent_since: date | None = Field(default=None, alias="sentSince")
    keyword: str | None = None
    un_keyword: str | None = Field(default=None, alias="unKeyword")
    header: dict[str, bool | str] | None = None
    or_: list[SearchQuery] | None = Field(default=None, alias="or")

    @model_validator(mode="after")
    def check_depth(self) -> SearchQuery:
        if self.depth() > MAX_QUERY_DEPTH:
            raise ValueError(f"'or' nesting deeper than {MAX_QUERY_DEPTH} levels")
        return self

    def depth(self) -> int:
        if not self.or_:
            return 1
        return 1 + max(child.depth() for child in self.or_)

    def to_criteria(self) -> list[Any]:
        """Compile to an imapclient search criteria list."""
        criteria = self._terms()
        if self.charset() == "UTF-8":
            # imapclient encodes nested lists as us-ascii whatever the charset.
            criteria = _encode_terms(criteria)
        return criteria or ["ALL"]

    def charset(self) -> str | None:
        """Return "UTF-8" when any text criterion needs it, else None."""
        for value in self._text_values():
            if not value.isascii():
                return "UTF-8"
        return None

    def _terms(self) -> list[Any]:
        terms: list[Any] = []

        if self.seq is not None:
            terms.append(self.seq)

        for attr, term in _FLAG_TERMS.items():
            value = getattr(self, attr)
            if value is not None:
                terms.append(term if value else f"UN{term}")

        for attr, term in _STATE_TERMS.items():
            value = getattr(self, attr)
            if value:
                terms.append(term)
            elif value is False and attr != "all":
                terms.extend(["NOT", term])

        for attr, term in _TEXT_TERMS.items():
            value = getattr(self, attr)
            if value is not None:
                terms.extend([term, value])

        for attr, term in _NUMBER_TERMS.items():
            value = getattr(self, attr)
            if value is not None:
                terms.extend([term, value])

        for attr, term in _ID_TERMS.items():
            value = getattr(self, attr)
            if value is not None:
                terms.extend([term, value])

        for attr, term in _DATE_TERMS.items():
            value = getattr(self, attr)
            if value is not None:
                terms.extend([term, value])

        for name, value in (self.header or {}).items():
            if value is True:
                terms.extend(["HEADER", name, ""])
            elif value is False:
                terms.extend(["NOT", ["HEADER", name, ""]])
            else:
                terms.extend(["HEADER", name, value])

        if self.or_:
            terms.extend(_or_tree([child._terms() for child in self.or_]))

        return terms

    def _text_values(self) -> list[str]:
        values = [getattr(self, attr) for attr in _TEXT_TERMS]
        values.extend(v for v in (self.header or {}).values() if isinstance(v, str))
        values = [v for v in values if isinstance(v, str)]
        for child in self.or_ or []:
            values.extend(child._text_values())
        return values


SearchQuery.model_rebuild()


def _encode_terms(terms: list[Any]) -> list[Any]:
    encoded: list[Any] = []
    for term in terms:
        if isinstance(term, str):
            encoded.append(term.encode("utf-8"))
        elif isinstance(term, list):
            encoded.append(_encode_terms(term))
        else:
            encoded.append(term)
    return encoded


def _or_tree(branches: list[list[Any]]) -> list[Any]:
    """Fold branches into right-nested ``OR (a) (OR (b) (c))`` terms."""
    branches = [branch for branch in branches if branch]
    if not branches:
        return []
    if len(branches) == 1:
        return [branches[0]]
    rest = _or_tree(branches[1:])
    return ["OR", branches[0], rest[0] if len(rest) == 1 else rest]


class SourceOptions(BaseModel):
    """Partial fetch of the raw message source."""

    model_config = ConfigDict(populate_by_name=True)

    start: int = Field(default=0, ge=0)
    max_length: PositiveInt | None = Field(default=None, alias="maxLength")


class FetchOptions(BaseModel):
    """
    Which parts of each message to retrieve.

    ``headers`` is either a flag (all headers) or a list of header names.
    ``source`` is either a flag (whole source) or a byte range.
    """

    model_config = ConfigDict(populate_by_name=True)

    uid: bool | None = None
    flags: bool | None = None
    body_structure: bool | None = Field(default=None, alias="bodyStructure")
    envelope: bool | None = None
    internal_date: bool | None = Field(default=None, alias="internalDate")
    size: bool | None = None
    source: bool | SourceOptions | None = None
    thread_id: bool | None = Field(default=None, alias="threadId")
    labels: bool | None = None
    headers: bool | list[str] | None = None
    body_parts: list[str] | None = Field(default=None, alias="bodyParts")

    def to_fetch_items(self) -> list[str]:
        """Compile to FETCH data items. ENVELOPE is always requested."""
        items: list[str] = []
        if self.uid:
            items.append("UID")
        if self.flags:
            items.append("FLAGS")
        if self.body_structure:
            items.append("BODYSTRUCTURE")
        items.append("ENVELOPE")
        if self.internal_date:
            items.append("INTERNALDATE")
        if self.size:
            items.append("RFC822.SIZE")

        if isinstance(self.source, SourceOptions):
            if self.source.max_length is not None:
                items.append(f"BODY.PEEK[]<{self.source.start}.{self.source.max_length}>")
            else:
                items.append("BODY.PEEK[]")
        elif self.source:
            items.append("BODY.PEEK[]")

        if self.thread_id:
            items.append("X-GM-THRID")
        if self.labels:
            items.append("X-GM-LABELS")

        if isinstance(self.headers, list):
            if self.headers:
                names = " ".join(name.upper() for name in self.headers)
                items.append(f"BODY.PEEK[HEADER.FIELDS ({names})]")
        elif self.headers:
            items.append("BODY.PEEK[HEADER]")

        for part in self.body_parts or []:
            items.append(f"BODY.PEEK[{part}]")

        return items


class SendEmailRequest(BaseModel):
    """Arguments of the send_email tool."""

    to: str = Field(..., description="Recipient email address.")
    subject: str = Field(..., min_length=1, description="Subject line.")
    text: str = Field(..., min_length=1, description="Plain text body.")
    html: str | None = Field(default=None, description="Optional HTML body.")

    @field_validator("to")
    @classmethod
    def check_to(cls, value: str) -> str:
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(str(e)) from e
        return value


class SearchEmailsRequest(BaseModel):
    """Arguments of the search_emails tool."""

    model_config = ConfigDict(populate_by_name=True)

    query: SearchQuery
    fetch_options: FetchOptions = Field(..., alias="fetchOptions")
    folder: str = Field(default="INBOX", description="Folder path to search.")
    limit: PositiveInt = Field(default=10, description="Maximum messages to return.")
