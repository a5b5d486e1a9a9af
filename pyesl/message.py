"""ESL message codec.

Decoding is split between this module, which knows what a header block and
a body mean, and pyesl.eslprotocol.ESLProtocol, which cuts frames out of the
byte stream. Encoding of the three command forms is done entirely here.
"""

import json
import logging
from email.feedparser import FeedParser
from email.message import Message as _EmailMessage
from email.policy import compat32
from urllib.parse import unquote

from pyesl.errors import (
    CouldNotDecode,
    CouldNotSendEvent,
    InvalidCommand,
    InvalidContentLength,
    MalformedEvent,
    MalformedHeader,
)

log = logging.getLogger("pyesl.message")

AUTH_REQUEST = "auth/request"
COMMAND_REPLY = "command/reply"
API_RESPONSE = "api/response"
TEXT_EVENT_PLAIN = "text/event-plain"
TEXT_EVENT_JSON = "text/event-json"
DISCONNECT_NOTICE = "text/disconnect-notice"
LOG_DATA = "log/data"

AVAILABLE_MESSAGE_TYPES = (
    AUTH_REQUEST,
    COMMAND_REPLY,
    API_RESPONSE,
    TEXT_EVENT_PLAIN,
    TEXT_EVENT_JSON,
    DISCONNECT_NOTICE,
    LOG_DATA,
)

CRLF = "\r\n"

TOKEN_CHARS = frozenset("!#$%&'*+-.^_`|~0123456789"
                        "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")


class Message(_EmailMessage):
    """Message - a decoded frame received from FreeSWITCH.
    Extends python's email.message.Message class, so header lookups are case
    insensitive and every method available on Message works here too.
    The payload of the frame is kept as bytes in `body`.
    """

    def __init__(self, policy=compat32):
        _EmailMessage.__init__(self, policy)
        self.body = b""
        self.contentType = None

    @classmethod
    def fromJSON(cls, body):
        """Build a message out of a text/event-json body.

        String fields become headers, anything else is skipped. A `_body`
        field becomes the message body.
        """
        try:
            decoded = json.loads(body)
        except ValueError as err:
            raise MalformedEvent("Could not decode JSON event: %s" % err)
        if not isinstance(decoded, dict):
            raise MalformedEvent("JSON event is not an object: %r" % (decoded,))

        msg = cls()
        for k, v in decoded.items():
            if isinstance(v, str):
                msg.setHeader(k, v)
            else:
                log.warning("Removed non-string property (%s)", k)

        body = msg.get("_body")
        if body is not None:
            del msg["_body"]
        msg.body = body.encode("utf-8") if body else b""
        return msg

    def setHeader(self, name, value):
        """Set a header, replacing any existing value"""
        del self[name]
        self[name] = value

    def decode(self):
        """Rebuild the headers with canonical names and trimmed, URL format
        decoded values. Only the first occurrence of a repeated header is kept.
        """
        items = self.items()
        for k in set(self.keys()):
            del self[k]
        seen = set()
        for k, v in items:
            if k.lower() in seen:
                continue
            seen.add(k.lower())
            v = v.strip()
            if "%" in v:
                try:
                    v = unquoteHeader(v)
                except CouldNotDecode as err:
                    log.error("%s", err)
            self[canonicalHeaderKey(k)] = v

    @property
    def headers(self):
        return dict(self.items())

    def getHeader(self, key):
        """Return the header value, or "" if the key is not set"""
        return self.get(key, "")

    def getCallUUID(self):
        return self.getHeader("Caller-Unique-ID")

    def dump(self):
        """Headers sorted by name followed by the body, for printing"""
        headers = self.headers
        lines = ["%s: %s\r\n" % (k, headers[k]) for k in sorted(headers)]
        lines.append("BODY: %s\r\n" % self.body.decode("utf-8", "replace"))
        return "".join(lines)

    def __str__(self):
        return "%s body=%s" % (self.headers, self.body.decode("utf-8", "replace"))


def canonicalHeaderKey(key):
    """MIME canonical form of a header name: "reply-text" -> "Reply-Text".
    Names holding anything but token characters are returned unchanged.
    """
    if not key or not TOKEN_CHARS.issuperset(key):
        return key
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def unquoteHeader(value):
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError as err:
        raise CouldNotDecode(value, err)


def parseHeaderBlock(lines):
    """Parse header lines (bytes, without line terminators) into a Message.

    Raises MalformedHeader when a line is not a header, the parser would
    otherwise take it and every line after it as payload.
    """
    parser = FeedParser(Message)
    for line in lines:
        parser.feed(line.decode("utf-8", "replace") + "\n")
    message = parser.close()
    if message.defects or message.get_payload():
        raise MalformedHeader(lines, message.defects)
    return message


def parseContentLength(value):
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        raise InvalidContentLength(value)
    return int(value)


def _toBytes(data):
    if isinstance(data, bytes):
        return data
    return data.encode("utf-8")


def _checkField(value, command):
    if "\r" in value or "\n" in value:
        raise InvalidCommand(command)


def encodeCommand(cmd):
    """Frame a plain command. Multi-line commands may use bare LF."""
    if CRLF in cmd:
        raise InvalidCommand(cmd)
    return _toBytes(cmd + "\r\n\r\n")


def encodeSendMsg(headers, uuid="", data=""):
    """Frame a sendmsg command.

    headers -- (dict) message headers, empty values are left out
    uuid -- (str) target channel, optional on outbound connections
    data -- (str/bytes) written after the headers when a content-length header is set
    """
    out = ["sendmsg"]
    if uuid:
        _checkField(uuid, uuid)
        out = ["sendmsg %s" % uuid]
    contentLength = False
    for k, v in headers.items():
        _checkField(k, headers)
        if k.lower() == "content-length" and v:
            contentLength = True
        if v:
            _checkField(v, headers)
            out.append("%s: %s" % (k, v))
    frame = _toBytes("\n".join(out) + "\n\n")
    if contentLength and data:
        frame += _toBytes(data)
    return frame


def encodeSendEvent(name, headers, body=""):
    """Frame a sendevent command.

    name -- (str) event name eg: CUSTOM, SEND_INFO
    headers -- (dict or list) header mapping or preformatted "Name: value" lines
    body -- (str/bytes) optional event body
    """
    if not headers:
        raise CouldNotSendEvent(0)
    _checkField(name, name)
    if hasattr(headers, "items"):
        lines = []
        for k, v in headers.items():
            _checkField(k, headers)
            _checkField(v, headers)
            lines.append("%s: %s" % (k, v))
    else:
        lines = list(headers)
        for line in lines:
            _checkField(line, line)

    out = ["sendevent %s\n" % name]
    out.extend("%s\r\n" % line for line in lines)
    out.append("\r\n")
    frame = _toBytes("".join(out))
    if body:
        frame += _toBytes(body) + b"\r\n"
    return frame
