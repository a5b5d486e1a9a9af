"""Outbound Event Socket connections: FreeSWITCH dials us, once per call."""

import logging
import os

from twisted.internet import defer, error, protocol

from pyesl.eslprotocol import ESLProtocol, parseAddress
from pyesl.errors import CouldNotStartListener, InvalidServerAddr, ListenerConnection

log = logging.getLogger("pyesl.outbound")

ADDRESS_ENV = "GOESL_OUTBOUND_SERVER_ADDR"


class OutboundProtocol(ESLProtocol):
    """
    Outbound connection from FreeSWITCH.
    The session is handed to the application as soon as the connection is
    made; sending connect is up to the application.
    """

    def connectionMade(self):
        log.info("New connection from FreeSWITCH %s", self.transport.getPeer())
        ESLProtocol.connectionMade(self)
        self.factory.conns.put(self)

    def connect(self):
        """Send connect, returns deferred fired with the channel data"""
        return self.request("connect")


class OutboundFactory(protocol.ServerFactory):
    protocol = OutboundProtocol

    def __init__(self):
        self.conns = defer.DeferredQueue()


class OutboundServer(object):
    """Listen for FreeSWITCH outbound socket connections

    addr -- (str) "host:port" to listen on, GOESL_OUTBOUND_SERVER_ADDR when empty
    proto -- (str) tcp or unix
    """

    def __init__(self, addr="", proto="tcp", reactor=None):
        if len(addr) < 2:
            addr = os.environ.get(ADDRESS_ENV, "")
            if not addr:
                raise InvalidServerAddr(addr)
        if reactor is None:
            from twisted.internet import reactor
        if proto != "unix":
            parseAddress(addr)
        self.reactor = reactor
        self.addr = addr
        self.proto = proto
        self.factory = OutboundFactory()
        self.conns = self.factory.conns
        self.listener = None
        self.stopObservers = []

    def start(self):
        """Start listening

        returns deferred fired when the server is stopped
        """
        if self.listener is not None:
            log.warning("Outbound server already listening on %s", self.addr)
            return self._whenStopped()
        log.info("Starting Freeswitch Outbound Server @ (address: %s) ...", self.addr)
        try:
            if self.proto == "unix":
                self.listener = self.reactor.listenUNIX(self.addr, self.factory)
            else:
                host, port = parseAddress(self.addr)
                self.listener = self.reactor.listenTCP(port, self.factory, interface=host)
        except error.CannotListenError as err:
            log.error("Could not start listener on %s: %s", self.addr, err)
            return defer.fail(CouldNotStartListener(self.addr, err))
        return self._whenStopped()

    def _whenStopped(self):
        d = defer.Deferred()
        self.stopObservers.append(d)
        return d

    def accept(self):
        """Returns deferred fired with the next OutboundProtocol"""
        if self.listener is None and not self.conns.pending:
            return defer.fail(ListenerConnection("Outbound server is not listening on %s" % self.addr))
        return self.conns.get()

    def stop(self):
        """Close the listener. Safe to call more than once."""
        if self.listener is None:
            return defer.succeed(None)
        log.warning("Stopping Outbound Server ...")
        listener, self.listener = self.listener, None
        while self.conns.waiting:
            self.conns.waiting.pop(0).errback(ListenerConnection("Outbound server stopped"))
        df = defer.maybeDeferred(listener.stopListening)
        df.addCallback(self._stopped)
        return df

    def _stopped(self, result):
        observers, self.stopObservers = self.stopObservers, []
        for d in observers:
            d.callback(None)
