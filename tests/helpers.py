from twisted.internet import error
from twisted.internet.testing import StringTransport
from twisted.python.failure import Failure

from pyesl.eslprotocol import ESLProtocol


class DisconnectingTransport(StringTransport):
    """StringTransport that tells the protocol when it is closed"""

    def __init__(self, protocol):
        StringTransport.__init__(self)
        self.protocol = protocol
        self.open = True

    def loseConnection(self):
        StringTransport.loseConnection(self)
        if self.open:
            self.open = False
            self.protocol.connectionLost(Failure(error.ConnectionDone("Bye.")))


def connect(proto=None):
    """Connect a protocol to an in-memory transport"""
    if proto is None:
        proto = ESLProtocol()
    transport = DisconnectingTransport(proto)
    proto.makeConnection(transport)
    return proto, transport
