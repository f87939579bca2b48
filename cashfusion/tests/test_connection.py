import socket
import unittest

from .. import fusion_pb2 as pb
from ..comms import recv_pb, send_pb, wrap_pb
from ..connection import BadFrameError, Connection
from ..util import ProtocolViolation, TransportError

MAGIC = bytes.fromhex("765be8b4e4396dcf")


class ConnectionTestCase(unittest.TestCase):
    def setUp(self):
        a, self.peer = socket.socketpair()
        self.conn = Connection(a, 1.0)

    def tearDown(self):
        self.conn.close()
        self.peer.close()

    def read_peer(self, n):
        data = b''
        while len(data) < n:
            chunk = self.peer.recv(n - len(data))
            if not chunk:
                break
            data += chunk
        return data


class TestFraming(ConnectionTestCase):

    def test_send_layout(self):
        self.conn.send_message(b'hello')
        self.assertEqual(self.read_peer(17), MAGIC + b'\0\0\0\x05' + b'hello')

    def test_recv(self):
        self.peer.sendall(MAGIC + b'\0\0\0\x03abc' + MAGIC + b'\0\0\0\0')
        self.assertEqual(self.conn.recv_message(), b'abc')
        self.assertEqual(self.conn.recv_message(), b'')

    def test_timeout_keeps_partial_frame(self):
        frame = MAGIC + b'\0\0\0\x04data'
        self.peer.sendall(frame[:10])
        self.assertIsNone(self.conn.recv_message(timeout=0.05))
        self.peer.sendall(frame[10:])
        self.assertEqual(self.conn.recv_message(timeout=1.0), b'data')

    def test_bad_magic(self):
        self.peer.sendall(b'\0' * 8 + b'\0\0\0\x01x')
        with self.assertRaises(BadFrameError):
            self.conn.recv_message()

    def test_oversize(self):
        length = Connection.MAX_MSG_LENGTH + 1
        self.peer.sendall(MAGIC + length.to_bytes(4, 'big'))
        with self.assertRaises(BadFrameError):
            self.conn.recv_message()

    def test_eof(self):
        self.peer.close()
        with self.assertRaises(ConnectionError):
            self.conn.recv_message()

    def test_eof_mid_message(self):
        self.peer.sendall(MAGIC + b'\0\0\0\x10abc')
        self.peer.shutdown(socket.SHUT_WR)
        with self.assertRaises(ConnectionError):
            self.conn.recv_message()


class TestComms(ConnectionTestCase):

    def peer_conn(self):
        return Connection(self.peer, 1.0)

    def test_round_trip(self):
        peer = self.peer_conn()
        hello = pb.ServerHello(tiers=[10000, 20000], num_components=23, component_feerate=1000,
                               min_excess_fee=10, max_excess_fee=1000)
        send_pb(peer, pb.ServerMessage, hello)
        msg, mtype = recv_pb(self.conn, pb.ServerMessage, 'serverhello', 'error')
        self.assertEqual(mtype, 'serverhello')
        self.assertEqual(list(msg.tiers), [10000, 20000])
        self.assertEqual(msg.num_components, 23)

    def test_wrap(self):
        outer = wrap_pb(pb.ClientMessage, pb.ClientHello(version=b'alpha13', genesis_hash=b'\0' * 32))
        self.assertEqual(outer.WhichOneof('msg'), 'clienthello')

    def test_timeout(self):
        self.assertEqual(recv_pb(self.conn, pb.ServerMessage, 'serverhello', timeout=0.05), (None, None))

    def test_unexpected_type(self):
        send_pb(self.peer_conn(), pb.ServerMessage, pb.Error(message='nope'))
        with self.assertRaises(ProtocolViolation):
            recv_pb(self.conn, pb.ServerMessage, 'serverhello')

    def test_empty_message(self):
        self.peer.sendall(MAGIC + b'\0\0\0\0')
        with self.assertRaises(ProtocolViolation):
            recv_pb(self.conn, pb.ServerMessage, 'serverhello')

    def test_undecodable(self):
        self.peer.sendall(MAGIC + b'\0\0\0\x03' + b'\xff\xff\xff')
        with self.assertRaises(ProtocolViolation):
            recv_pb(self.conn, pb.ServerMessage, 'serverhello')

    def test_transport_errors(self):
        self.peer.sendall(b'garbage-garbage!')
        with self.assertRaises(TransportError):
            recv_pb(self.conn, pb.ServerMessage, 'serverhello')

        self.peer.close()
        with self.assertRaises(TransportError):
            recv_pb(self.conn, pb.ServerMessage, 'serverhello')


if __name__ == '__main__':
    unittest.main()
