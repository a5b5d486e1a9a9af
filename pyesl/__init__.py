"""Twisted Protocols for communication with FreeSWITCH

pyesl speaks the FreeSWITCH Event Socket Layer using inbound and outbound
EventSocket connections.

Inbound: InboundClient dials the switch, logs in with the event socket
password and gives back a session to send commands and read events on.
Outbound: OutboundServer listens for the connections the dialplan's socket
application makes, one per call, and hands each of them over as a session.
"""
__license__ = "GPL"
__version__ = "0.5"

import logging

from pyesl.errors import (
    CouldNotDecode,
    CouldNotSendEvent,
    CouldNotStartListener,
    ESLError,
    InvalidCommand,
    InvalidContentLength,
    InvalidServerAddr,
    ListenerConnection,
    MalformedEvent,
    MalformedHeader,
    NotConnected,
    ParseEOF,
    ReadBody,
    UnexpectedMessage,
    UnsuccessfulReply,
    UnsupportedMessageType,
)
from pyesl.eslprotocol import ESLProtocol
from pyesl.inbound import InboundClient, InboundFactory, InboundProtocol, exponentialBackoff
from pyesl.message import AVAILABLE_MESSAGE_TYPES, Message
from pyesl.outbound import OutboundFactory, OutboundProtocol, OutboundServer

logging.getLogger("pyesl").addHandler(logging.NullHandler())
