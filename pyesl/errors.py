"""Errors raised and delivered by pyesl"""


class ESLError(Exception):
    """Base class of every pyesl error"""
    pass


class InvalidCommand(ESLError):
    """A command, uuid or header would break the frame it is written in"""

    def __init__(self, command):
        ESLError.__init__(self, "Invalid command provided. Command cannot contain \\r and/or \\n. Provided command is: %r" % (command,))
        self.command = command


class CouldNotSendEvent(ESLError):
    """sendevent called without headers"""

    def __init__(self, count=0):
        ESLError.__init__(self, "Must send at least one event header, detected `%d` header" % count)


class ParseEOF(ESLError):
    """A frame arrived without Content-Type"""

    def __init__(self):
        ESLError.__init__(self, "Parse EOF")


class InvalidContentLength(ESLError):

    def __init__(self, value):
        ESLError.__init__(self, "Invalid Content-Length: %r" % (value,))
        self.value = value


class ReadBody(ESLError):
    """The stream ended before the declared body was read"""

    def __init__(self, expected, received):
        ESLError.__init__(self, "Could not read message body: expected %d bytes, got %d" % (expected, received))
        self.expected = expected
        self.received = received


class UnsupportedMessageType(ESLError):

    def __init__(self, contentType, supported=()):
        ESLError.__init__(self, "Unsupported message type! We got '%s'. Supported types are: %s" % (
            contentType, ", ".join(supported)))
        self.contentType = contentType


class UnsuccessfulReply(ESLError):
    """FreeSWITCH answered with -ERR

    reply -- (str) the text following -ERR
    message -- (Message) the reply as it was received
    """

    def __init__(self, reply, message=None):
        ESLError.__init__(self, reply)
        self.reply = reply
        self.message = message


class CouldNotDecode(ESLError):

    def __init__(self, value, reason):
        ESLError.__init__(self, "Could not decode/unescape message %r: %s" % (value, reason))
        self.value = value


class MalformedEvent(ESLError):
    """A text/event-json body is not a JSON object"""
    pass


class MalformedHeader(ESLError):
    """A header block holds a line that is not a "Name: value" header"""

    def __init__(self, lines, defects=()):
        ESLError.__init__(self, "Malformed MIME header block: %r (%s)" % (
            lines, ", ".join(type(d).__name__ for d in defects) or "trailing data"))
        self.lines = lines


class UnexpectedMessage(ESLError):
    """The switch sent something other than what the handshake expects"""

    def __init__(self, reason, message=None):
        ESLError.__init__(self, reason)
        self.message = message


class CouldNotStartListener(ESLError):

    def __init__(self, addr, reason):
        ESLError.__init__(self, "Got error while attempting to start listener on %s: %s" % (addr, reason))
        self.addr = addr


class ListenerConnection(ESLError):
    """The outbound listener is closed"""
    pass


class InvalidServerAddr(ESLError):

    def __init__(self, addr):
        ESLError.__init__(self, "Please make sure to pass along valid address. You've passed: %r" % (addr,))
        self.addr = addr


class NotConnected(ESLError):
    """The session is gone, or reconnecting gave up

    lastError -- the failure of the last reconnect attempt, if any
    """

    def __init__(self, lastError=None):
        msg = "not connected to FreeSWITCH"
        if lastError is not None:
            msg = "%s: %s" % (msg, lastError)
        ESLError.__init__(self, msg)
        self.lastError = lastError
