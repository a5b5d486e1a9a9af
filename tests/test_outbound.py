import os

from twisted.internet import error
from twisted.internet.testing import MemoryReactorClock, StringTransport
from twisted.trial.unittest import SynchronousTestCase

from pyesl.errors import CouldNotStartListener, InvalidServerAddr, ListenerConnection
from pyesl.outbound import ADDRESS_ENV, OutboundProtocol, OutboundServer

CHANNEL_DATA = (
    b"Content-Type: command/reply\r\n"
    b"Reply-Text: +OK\r\n"
    b"Channel-Unique-ID: 0dd4e4f7-36ed-a04d-a8f7-7aebb683af50\r\n"
    b"Caller-Caller-ID-Number: 1000\r\n"
    b"\r\n"
)


class RefusingReactor(MemoryReactorClock):

    def listenTCP(self, port, factory, backlog=50, interface=""):
        raise error.CannotListenError(interface, port, OSError("Address already in use"))


class AddressTests(SynchronousTestCase):

    def setUp(self):
        self.reactor = MemoryReactorClock()

    def test_fromEnvironment(self):
        self.patch(os, "environ", {ADDRESS_ENV: "127.0.0.1:8084"})
        server = OutboundServer("", reactor=self.reactor)
        self.assertEqual(server.addr, "127.0.0.1:8084")

    def test_explicitAddressWins(self):
        self.patch(os, "environ", {ADDRESS_ENV: "127.0.0.1:8084"})
        server = OutboundServer("0.0.0.0:9000", reactor=self.reactor)
        self.assertEqual(server.addr, "0.0.0.0:9000")

    def test_missingAddress(self):
        self.patch(os, "environ", {})
        self.assertRaises(InvalidServerAddr, OutboundServer, "", reactor=self.reactor)
        self.assertRaises(InvalidServerAddr, OutboundServer, ":", reactor=self.reactor)

    def test_invalidAddress(self):
        self.assertRaises(InvalidServerAddr, OutboundServer, "localhost:port", reactor=self.reactor)
        self.assertRaises(InvalidServerAddr, OutboundServer, "localhost", reactor=self.reactor)


class ServerTests(SynchronousTestCase):

    def setUp(self):
        self.reactor = MemoryReactorClock()
        self.server = OutboundServer("127.0.0.1:8084", reactor=self.reactor)

    def connectFromSwitch(self):
        proto = self.server.factory.buildProtocol(None)
        transport = StringTransport()
        proto.makeConnection(transport)
        return proto, transport

    def test_start(self):
        d = self.server.start()
        self.assertEqual(self.reactor.tcpServers, [(8084, self.server.factory, 50, "127.0.0.1")])
        self.assertNoResult(d)

    def test_startUnix(self):
        server = OutboundServer("/tmp/pyesl.sock", proto="unix", reactor=self.reactor)
        server.start()
        self.assertEqual(self.reactor.unixServers[0][0], "/tmp/pyesl.sock")

    def test_couldNotListen(self):
        server = OutboundServer("127.0.0.1:8084", reactor=RefusingReactor())
        failure = self.failureResultOf(server.start(), CouldNotStartListener)
        self.assertIsNone(server.listener)
        self.assertIn("127.0.0.1:8084", str(failure.value))

    def test_accept(self):
        self.server.start()
        d = self.server.accept()
        self.assertNoResult(d)
        proto, transport = self.connectFromSwitch()
        self.assertIsInstance(proto, OutboundProtocol)
        self.assertIs(self.successResultOf(d), proto)

    def test_acceptQueuesConnections(self):
        self.server.start()
        first, _ = self.connectFromSwitch()
        second, _ = self.connectFromSwitch()
        self.assertIs(self.successResultOf(self.server.accept()), first)
        self.assertIs(self.successResultOf(self.server.accept()), second)

    def test_connect(self):
        self.server.start()
        proto, transport = self.connectFromSwitch()
        d = proto.connect()
        self.assertEqual(transport.value(), b"connect\r\n\r\n")
        proto.dataReceived(CHANNEL_DATA)
        msg = self.successResultOf(d)
        self.assertEqual(msg.getHeader("Caller-Caller-ID-Number"), "1000")
        self.assertEqual(msg.getHeader("channel-unique-id"), "0dd4e4f7-36ed-a04d-a8f7-7aebb683af50")

    def test_stop(self):
        started = self.server.start()
        waiting = self.server.accept()
        self.successResultOf(self.server.stop())
        self.assertIsNone(self.successResultOf(started))
        self.failureResultOf(waiting, ListenerConnection)
        self.failureResultOf(self.server.accept(), ListenerConnection)

    def test_stopIsIdempotent(self):
        self.server.start()
        self.successResultOf(self.server.stop())
        self.successResultOf(self.server.stop())

    def test_acceptBeforeStart(self):
        self.failureResultOf(self.server.accept(), ListenerConnection)

    def test_startTwice(self):
        first = self.server.start()
        second = self.server.start()
        self.assertEqual(len(self.reactor.tcpServers), 1)
        self.assertNoResult(second)
        self.successResultOf(self.server.stop())
        self.assertIsNone(self.successResultOf(first))
        self.assertIsNone(self.successResultOf(second))
