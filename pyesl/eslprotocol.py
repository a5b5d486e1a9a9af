"""Twisted protocol for a FreeSWITCH Event Socket connection.

ESLProtocol is the session shared by the inbound client and the outbound
server. It frames messages out of the stream, hands every decoded message
to whoever waits on readMsg() and writes commands.
"""

import logging
import uuid as _uuid

from twisted.internet import defer, error
from twisted.internet.protocol import connectionDone
from twisted.protocols import basic
from twisted.python.failure import Failure

from pyesl.errors import (
    ESLError,
    InvalidContentLength,
    InvalidServerAddr,
    MalformedHeader,
    NotConnected,
    ParseEOF,
    ReadBody,
    UnsuccessfulReply,
    UnsupportedMessageType,
)
from pyesl.message import (
    API_RESPONSE,
    AUTH_REQUEST,
    AVAILABLE_MESSAGE_TYPES,
    COMMAND_REPLY,
    DISCONNECT_NOTICE,
    LOG_DATA,
    TEXT_EVENT_JSON,
    TEXT_EVENT_PLAIN,
    Message,
    encodeCommand,
    encodeSendEvent,
    encodeSendMsg,
    parseContentLength,
    parseHeaderBlock,
)

log = logging.getLogger("pyesl.protocol")


def parseAddress(addr):
    """Split "host:port" (or "[v6]:port", ":port") into (host, port)"""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise InvalidServerAddr(addr)
    try:
        port = int(port)
    except ValueError:
        raise InvalidServerAddr(addr)
    if not 0 <= port <= 65535:
        raise InvalidServerAddr(addr)
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        # too many colons, v6 hosts must be bracketed
        raise InvalidServerAddr(addr)
    return host, port


class ESLProtocol(basic.LineReceiver):
    """FreeSWITCH EventSocket protocol implementation.

    Every decoded message is queued on the inbox and handed out, in wire
    order, to readMsg() and sendMsg() callers. The first error that stops the
    reader (a frame that can not be decoded or the loss of the connection) is
    queued after the last message; the connection is closed at that point.
    """
    delimiter = b"\n"
    contentCallbacks = None
    message = None
    contentLength = 0
    failure = None
    done = False

    def __init__(self):
        self.headerLines = []
        self.rawdataCache = []
        self.rawdataLength = 0
        self.inbox = defer.DeferredQueue()
        self.doneObservers = []
        self.contentCallbacks = {AUTH_REQUEST: self.deliver,
                                 COMMAND_REPLY: self.onCommandReply,
                                 API_RESPONSE: self.onAPIReply,
                                 TEXT_EVENT_PLAIN: self.deliver,
                                 TEXT_EVENT_JSON: self.deliver,
                                 DISCONNECT_NOTICE: self.onDisconnectNotice,
                                 LOG_DATA: self.deliver,
                                 }

    def connectionMade(self):
        log.info("Connected to FreeSWITCH %s", self.transport.getPeer())

    def connectionLost(self, reason=connectionDone):
        self.connected = 0
        if self.message is not None:
            reason = Failure(ReadBody(self.contentLength, self.rawdataLength))
        self.readerFailed(reason)
        log.info("Cleaning up")
        self.done = True
        observers, self.doneObservers = self.doneObservers, []
        for d in observers:
            d.callback(None)
        self.disconnectedFromFreeSWITCH()

    def disconnectedFromFreeSWITCH(self):
        """Over-ride this to get notified of FreeSWITCH disconnection"""
        pass

    # Reading

    def dataReceived(self, data):
        """
        Overridden so that header lines longer than MAX_LENGTH (channel
        variables can be big) do not get the connection dropped
        """
        if self._busyReceiving:
            self._buffer += data
            return

        try:
            self._busyReceiving = True
            self._buffer += data
            while self._buffer and not self.paused:
                if self.line_mode:
                    try:
                        line, self._buffer = self._buffer.split(self.delimiter, 1)
                    except ValueError:
                        return
                    why = self.lineReceived(line)
                    if why or self.transport and self.transport.disconnecting:
                        return why
                else:
                    data, self._buffer = self._buffer, b""
                    why = self.rawDataReceived(data)
                    if why:
                        return why
        finally:
            self._busyReceiving = False

    def lineReceived(self, line):
        if self.failure is not None:
            return
        if line.endswith(b"\r"):
            line = line[:-1]
        log.debug("Line In: %r", line)
        if line:
            self.headerLines.append(line)
            return

        lines, self.headerLines = self.headerLines, []
        try:
            message = parseHeaderBlock(lines)
        except MalformedHeader:
            self.readerFailed(Failure())
            return
        if not message.get("Content-Type", "").strip():
            log.debug("Not accepting message because of empty content type")
            self.readerFailed(Failure(ParseEOF()))
            return

        if "Content-Length" in message:
            try:
                length = parseContentLength(message["Content-Length"])
            except InvalidContentLength:
                self.readerFailed(Failure())
                return
            if length > 0:
                log.debug("Entering raw mode to read %d bytes of payload", length)
                self.message = message
                self.contentLength = length
                self.rawdataCache = []
                self.rawdataLength = 0
                self.setRawMode()
                return
        self.messageReceived(message, b"")

    def rawDataReceived(self, data):
        """Read length of raw data specified by self.contentLength and set it as message payload"""
        self.rawdataCache.append(data)
        self.rawdataLength += len(data)
        if self.rawdataLength < self.contentLength:
            return

        data = b"".join(self.rawdataCache)
        body, extra = data[:self.contentLength], data[self.contentLength:]
        message = self.message
        self.message = None
        self.contentLength = 0
        self.rawdataCache = []
        self.rawdataLength = 0
        log.debug("Data In: %r", body)

        self.messageReceived(message, body)
        if self.failure is None:
            self.setLineMode(extra)

    def messageReceived(self, headers, body):
        """Decode a complete frame and queue the result"""
        contentType = headers["Content-Type"].strip()
        log.debug("Got message content (type: %s)", contentType)
        try:
            if contentType not in AVAILABLE_MESSAGE_TYPES:
                raise UnsupportedMessageType(contentType, AVAILABLE_MESSAGE_TYPES)
            if contentType == TEXT_EVENT_JSON:
                msg = Message.fromJSON(body)
            else:
                msg = headers
                msg.body = body
                msg.decode()
            msg.contentType = contentType
            msg = self.contentCallbacks[contentType](msg)
        except UnsuccessfulReply:
            # -ERR is an answer, not a broken stream: keep reading.
            self.inbox.put(Failure())
        except ESLError:
            self.readerFailed(Failure())
        else:
            self.inbox.put(msg)

    def readerFailed(self, reason):
        """Queue the error that stops the reader and close the connection.
        Only the first call has any effect.
        """
        if self.failure is not None:
            return
        self.failure = reason
        if reason.check(error.ConnectionDone):
            log.info("Connection closed: %s", reason.getErrorMessage())
        else:
            log.error("Reader stopped: %s", reason.getErrorMessage())

        # A queued Failure fires the errback of the getter that receives it.
        self.inbox.put(reason)
        while self.inbox.waiting:
            self.inbox.waiting.pop(0).errback(NotConnected())
        if self.connected and self.transport is not None:
            self.transport.loseConnection()

    # Content-Type handlers, called with the decoded message. They return the
    # message to be queued or raise.

    def deliver(self, msg):
        return msg

    def onCommandReply(self, msg):
        reply = msg.getHeader("Reply-Text")
        if reply.startswith("-ERR"):
            raise UnsuccessfulReply(reply[4:].strip(), msg)
        return msg

    def onAPIReply(self, msg):
        body = msg.body.decode("utf-8", "replace")
        if body.startswith("-ERR"):
            raise UnsuccessfulReply(body[4:].strip(), msg)
        return msg

    def onDisconnectNotice(self, msg):
        for k, v in msg.items():
            log.debug("Message (header: %s) -> (value: %s)", k, v)
        self.disconnectNoticeReceived(msg)
        return msg

    def disconnectNoticeReceived(self, msg):
        """Override this to receive disconnect notice from FreeSWITCH"""
        pass

    # Session API

    def readMsg(self):
        """Return a deferred fired with the next message.

        The deferred fails with the error that stopped the reader, and with
        NotConnected once that error has been handed out.
        """
        if self.failure is not None and not self.inbox.pending:
            return defer.fail(NotConnected())
        return self.inbox.get()

    def handle(self):
        """Return a deferred fired once the reader has stopped and the connection is closed"""
        if self.done:
            return defer.succeed(None)
        d = defer.Deferred()
        self.doneObservers.append(d)
        return d

    def close(self):
        """Close the connection. Safe to call more than once."""
        if self.connected and self.transport is not None:
            self.transport.loseConnection()

    def originatorAddr(self):
        """Address of the other end, i.e. the FreeSWITCH box"""
        return self.transport.getPeer()

    def writeFrame(self, frame):
        if self.transport is None or not self.connected or self.failure is not None:
            raise NotConnected()
        log.debug("Line Out: %r", frame)
        self.transport.write(frame)

    def send(self, cmd):
        """Send a single command

        cmd -- (str) command without terminator eg: "api status"
        """
        self.writeFrame(encodeCommand(cmd))

    def sendMany(self, cmds):
        """Send commands in order, stopping at the first one that fails"""
        for cmd in cmds:
            self.send(cmd)

    def sendEvent(self, name, headers, body=""):
        """Fire an event on FreeSWITCH

        name -- (str) event name
        headers -- (dict or list) at least one header
        body -- (str) event body, optional
        """
        self.writeFrame(encodeSendEvent(name, headers, body))

    def sendMsg(self, headers, uuid="", data=""):
        """Send a sendmsg command

        headers -- (dict) sendmsg headers eg: {"call-command": "hangup"}
        uuid -- (str) target channel, not needed on outbound connections
        data -- (str) payload, sent only with a content-length header

        returns deferred fired with the next message received, which is taken
        to be the reply
        """
        self.writeFrame(encodeSendMsg(headers, uuid, data))
        return self.readMsg()

    def execute(self, app, args="", sync=False):
        """Execute a dialplan application on the connected channel"""
        return self.executeUUID("", app, args, sync)

    def executeUUID(self, uuid, app, args="", sync=False):
        """Execute a dialplan application

        uuid -- (str) uuid of the target channel
        app -- (str) application name eg: playback
        args -- (str) application arguments
        sync -- (bool) lock the channel until execution is finished
        """
        return self.sendMsg({
            "call-command": "execute",
            "execute-app-name": app,
            "execute-app-arg": args,
            "event-lock": "true" if sync else "false",
        }, uuid)

    # Commands

    def request(self, cmd):
        """Send a command, returns deferred fired with its reply"""
        self.send(cmd)
        return self.readMsg()

    def api(self, cmd):
        return self.request("api %s" % cmd)

    def bgapi(self, cmd, jobUUID=None):
        """Run an api command in the background.
        The result arrives later as a BACKGROUND_JOB event carrying jobUUID.
        """
        if not jobUUID:
            jobUUID = str(_uuid.uuid1())
        return self.request("bgapi %s\nJob-UUID: %s" % (cmd, jobUUID))

    def events(self, names="all", format="plain"):
        """Subscribe to FreeSWITCH events.

        names -- (str or list) 'all' or event names separated by space
        format -- (str) plain, json or xml
        """
        if not isinstance(names, str):
            names = " ".join(names)
        return self.request("event %s %s" % (format, names))

    def noevents(self):
        return self.request("noevents")

    def myevents(self, uuid=""):
        """Tie up the connection to particular channel events"""
        if uuid:
            return self.request("myevents %s" % uuid)
        return self.request("myevents")

    def filter(self, header, value):
        return self.request("filter %s %s" % (header, value))

    def linger(self, seconds=None):
        """Keep receiving events after the channel hangs up"""
        if seconds is None:
            return self.request("linger")
        return self.request("linger %d" % seconds)

    def nolinger(self):
        return self.request("nolinger")

    def exit(self):
        return self.request("exit")

    # dp tools, uuid is optional on outbound socket connections

    def answer(self, uuid="", sync=True):
        """Answer channel"""
        return self.executeUUID(uuid, "answer", "", sync)

    def hangup(self, cause="", uuid="", sync=True):
        """Hangup channel

        cause -- (str) hangup cause eg: NORMAL_CLEARING
        """
        return self.executeUUID(uuid, "hangup", cause, sync)

    def playback(self, path, uuid="", sync=True):
        return self.executeUUID(uuid, "playback", path, sync)

    def set(self, variable, value, uuid="", sync=True):
        """Set a channel variable"""
        return self.executeUUID(uuid, "set", "%s=%s" % (variable, value), sync)

    def bridge(self, endpoints, uuid="", sync=True):
        """Bridge channel to the given endpoints

        endpoints -- (str or list) FreeSWITCH dial strings
        """
        if not isinstance(endpoints, str):
            endpoints = ",".join(endpoints)
        return self.executeUUID(uuid, "bridge", endpoints, sync)
