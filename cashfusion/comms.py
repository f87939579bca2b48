"""
Protobuf communications on top of the framed connection.
"""
import socket

from google.protobuf.message import DecodeError

from . import fusion_pb2 as pb
from .connection import BadFrameError
from .util import TransportError, ProtocolViolation

# We have some "outer" message types that simply contain a "oneof", with various
# submessages having unique types. So, we create an inverse mapping here from the
# submessage's type name to the field name.
_messagedescriptor_names = {
    mtype: {d.message_type.full_name : n for n,d in mtype.DESCRIPTOR.fields_by_name.items()}
    for mtype in (pb.ClientMessage, pb.ServerMessage, pb.CovertMessage, pb.CovertResponse)
    }

def wrap_pb(pb_class, submsg):
    """ Wrap the submessage into an outer message. """
    fieldname = _messagedescriptor_names[pb_class][submsg.DESCRIPTOR.full_name]
    return pb_class(**{fieldname: submsg})

def send_pb(connection, pb_class, submsg, timeout=None):
    msgbytes = wrap_pb(pb_class, submsg).SerializeToString()
    try:
        connection.send_message(msgbytes, timeout=timeout)
    except ConnectionError as e:
        raise TransportError('connection closed by remote') from e
    except socket.timeout as e:
        raise TransportError('timed out during send') from e
    except OSError as exc:
        raise TransportError('Communications error: {}: {}'.format(type(exc).__name__, exc)) from exc
    # Other exceptions propagate up

def recv_pb(connection, pb_class, *expected_field_names, timeout=None):
    """ Receive one message and unwrap it. Returns (submsg, field name), or
    (None, None) if nothing arrived within the timeout. """
    try:
        blob = connection.recv_message(timeout = timeout)
    except ConnectionError as e:
        raise TransportError('connection closed by remote') from e
    except BadFrameError as e:
        raise TransportError('corrupted communication: ' + e.args[0]) from e
    except OSError as exc:
        if exc.errno == 9:
            raise TransportError('connection closed by local') from exc
        else:
            raise TransportError('Communications error: {}: {}'.format(type(exc).__name__, exc)) from exc
    # Other exceptions propagate up

    if blob is None:
        return None, None

    msg = pb_class()
    try:
        msg.ParseFromString(blob)
    except DecodeError as e:
        raise ProtocolViolation('message decoding error') from e

    if not msg.IsInitialized():
        raise ProtocolViolation('incomplete message received')

    mtype = msg.WhichOneof('msg')
    if mtype is None:
        raise ProtocolViolation('unrecognized message')
    submsg = getattr(msg, mtype)

    if mtype not in expected_field_names:
        raise ProtocolViolation('got {} message, expecting {}'.format(mtype, expected_field_names))

    return submsg, mtype
