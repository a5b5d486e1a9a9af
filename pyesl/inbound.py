"""Inbound Event Socket connections: we dial FreeSWITCH."""

import logging

from twisted.internet import defer, error, protocol, task

from pyesl.eslprotocol import ESLProtocol, parseAddress
from pyesl.errors import ESLError, NotConnected, UnexpectedMessage
from pyesl.message import AUTH_REQUEST, COMMAND_REPLY

log = logging.getLogger("pyesl.inbound")

DEFAULT_TIMEOUT = 10
DEFAULT_RECONNECTS = 5
DEFAULT_MAX_RECONNECT_INTERVAL = 60


def _backoff(initial, maximum, factor):
    delay = initial
    while True:
        yield min(delay, maximum)
        delay *= factor


def exponentialBackoff(initial, maximum, factor=2):
    """Delay function factory for reconnectIfNeeded.

    Returns a callable producing initial, initial * factor, ... capped at maximum.
    """
    delays = _backoff(initial, maximum, factor)
    return lambda: next(delays)


class InboundProtocol(ESLProtocol):
    """
    Inbound connection to FreeSWITCH.
    Using inbound socket connections you can check status, make outbound calls, etc.
    Authentication starts as soon as the connection is made.
    """

    def connectionMade(self):
        ESLProtocol.connectionMade(self)
        df = self.authenticate(self.factory.password)
        df.addCallbacks(self.authSuccess, self.authFailed)

    @defer.inlineCallbacks
    def authenticate(self, password):
        """Perform authentication

        returns deferred fired with the command/reply accepting the password
        """
        msg = yield self.readMsg()
        if msg.contentType != AUTH_REQUEST:
            raise UnexpectedMessage("Expected auth/request, got %s" % msg.contentType, msg)

        self.send("auth %s" % password)

        # -ERR comes back as UnsuccessfulReply
        reply = yield self.readMsg()
        if reply.contentType != COMMAND_REPLY or not reply.getHeader("Reply-Text").startswith("+OK"):
            raise UnexpectedMessage("Unexpected authentication reply: %s" % reply, reply)
        return reply

    def authSuccess(self, msg):
        """Override this for when authentication is successful"""
        log.info("Successfully authenticated")
        self.factory.loginDeferred.callback(self)

    def authFailed(self, reason):
        """Override this for when authentication failed"""
        log.error("Login failed: %s", reason.getErrorMessage())
        self.close()
        self.factory.loginDeferred.errback(reason)


class InboundFactory(protocol.ClientFactory):
    """A factory for InboundProtocol
    """
    protocol = InboundProtocol

    def __init__(self, password):
        self.password = password
        self.loginDeferred = defer.Deferred()

    def clientConnectionFailed(self, connector, reason):
        log.info("Failed to connect to FreeSWITCH: %s", reason.getErrorMessage())
        self.loginDeferred.errback(reason)


class InboundClient(object):
    """Inbound client with reconnection support.

    address -- (str) "host:port" of the event socket, or a path for unix
    password -- (str) event socket password
    network -- (str) tcp, tcp4, tcp6 or unix
    timeout -- (int) connect timeout in seconds
    reconnects -- (int) attempts made by reconnectIfNeeded, -1 for no limit
    maxReconnectInterval -- (int) upper bound of the delay between attempts
    delayFunc -- factory called with (initial, maximum) returning the delay function
    """

    def __init__(self, address, password, network="tcp", timeout=DEFAULT_TIMEOUT,
                 reconnects=DEFAULT_RECONNECTS, maxReconnectInterval=DEFAULT_MAX_RECONNECT_INTERVAL,
                 delayFunc=exponentialBackoff, reactor=None):
        if reactor is None:
            from twisted.internet import reactor
        self.reactor = reactor
        self.address = address
        self.password = password
        self.network = network
        self.timeout = timeout
        self.reconnects = reconnects
        self.maxReconnectInterval = maxReconnectInterval
        self.delayFunc = delayFunc
        self.session = None

    def dial(self, factory):
        if self.network == "unix":
            return self.reactor.connectUNIX(self.address, factory, timeout=self.timeout)
        host, port = parseAddress(self.address)
        return self.reactor.connectTCP(host, port, factory, timeout=self.timeout)

    def authenticate(self):
        """Connect and log in

        returns deferred fired with the authenticated InboundProtocol
        """
        factory = InboundFactory(self.password)
        self.dial(factory)
        df = factory.loginDeferred
        df.addCallback(self._authenticated)
        return df

    def _authenticated(self, session):
        self.session = session
        return session

    def connected(self):
        return self.session is not None and bool(self.session.connected)

    @defer.inlineCallbacks
    def reconnectIfNeeded(self):
        """Dial again until connected or out of attempts

        returns deferred failing with NotConnected once all attempts failed
        """
        if self.connected():
            return
        delay = self.delayFunc(1.0, self.maxReconnectInterval)
        attempt = 0
        lastError = None
        while self.reconnects == -1 or attempt < self.reconnects:
            attempt += 1
            try:
                yield self.authenticate()
            except (error.ConnectError, error.ConnectionClosed, ESLError) as err:
                lastError = err
                log.warning("Reconnect attempt %d to %s failed: %s", attempt, self.address, err)
            else:
                return
            if self.reconnects == -1 or attempt < self.reconnects:
                yield task.deferLater(self.reactor, delay(), lambda: None)
        raise NotConnected(lastError)

    def getSession(self):
        if self.session is None:
            raise NotConnected()
        return self.session

    def send(self, cmd):
        return self.getSession().send(cmd)

    def sendMany(self, cmds):
        return self.getSession().sendMany(cmds)

    def sendEvent(self, name, headers, body=""):
        return self.getSession().sendEvent(name, headers, body)

    def sendMsg(self, headers, uuid="", data=""):
        return self.getSession().sendMsg(headers, uuid, data)

    def execute(self, app, args="", sync=False):
        return self.getSession().execute(app, args, sync)

    def executeUUID(self, uuid, app, args="", sync=False):
        return self.getSession().executeUUID(uuid, app, args, sync)

    def readMsg(self):
        return self.getSession().readMsg()

    def api(self, cmd):
        return self.getSession().api(cmd)

    def bgapi(self, cmd, jobUUID=None):
        return self.getSession().bgapi(cmd, jobUUID)

    def events(self, names="all", format="plain"):
        return self.getSession().events(names, format)

    def close(self):
        if self.session is not None:
            self.session.close()
