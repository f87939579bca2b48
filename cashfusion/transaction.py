"""
Just enough of a Bitcoin Cash transaction to assemble a fusion from its
components, compute the (BIP143 + forkid) signature hashes for our inputs,
and serialize the result once everyone's signatures are in.
"""

import hashlib

from google.protobuf.message import DecodeError

from . import fusion_pb2 as pb
from .protocol import Protocol
from .util import ProtocolViolation, double_sha256

OP_RETURN = 0x6a
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xa9
OP_CHECKSIG = 0xac

SIGHASH_ALL = 0x01
SIGHASH_FORKID = 0x40


def hash160(x):
    return hashlib.new('ripemd160', hashlib.sha256(x).digest()).digest()

def p2pkh_script(pubkey_hash):
    assert len(pubkey_hash) == 20
    return bytes([OP_DUP, OP_HASH160, 20]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])

def p2sh_script(script_hash):
    assert len(script_hash) == 20
    return bytes([OP_HASH160, 20]) + script_hash + bytes([OP_EQUAL])

def is_standard_output_script(script):
    """ Only P2PKH and P2SH outputs are allowed in a fusion. """
    if len(script) == 25:
        return (script[:3] == bytes([OP_DUP, OP_HASH160, 20])
                and script[23:] == bytes([OP_EQUALVERIFY, OP_CHECKSIG]))
    if len(script) == 23:
        return script[:2] == bytes([OP_HASH160, 20]) and script[22] == OP_EQUAL
    return False

def push_data(data):
    n = len(data)
    assert n < 76  # sigs and pubkeys only
    return bytes([n]) + data

def var_int(i):
    if i < 0xfd:
        return bytes([i])
    elif i <= 0xffff:
        return b'\xfd' + i.to_bytes(2, 'little')
    elif i <= 0xffffffff:
        return b'\xfe' + i.to_bytes(4, 'little')
    return b'\xff' + i.to_bytes(8, 'little')


class TxInput:
    __slots__ = ('prev_txid', 'prev_index', 'pubkey', 'amount', 'sequence', 'signature')

    def __init__(self, prev_txid, prev_index, pubkey, amount, sequence=0xffffffff):
        self.prev_txid = prev_txid  # 32 bytes, already in tx (reversed) order
        self.prev_index = prev_index
        self.pubkey = pubkey
        self.amount = amount
        self.sequence = sequence
        self.signature = None  # 64-byte schnorr sig, filled in when available

    def outpoint(self):
        return self.prev_txid + self.prev_index.to_bytes(4, 'little')

    def script_code(self):
        return p2pkh_script(hash160(self.pubkey))

    def script_sig(self, hashtype=SIGHASH_ALL|SIGHASH_FORKID):
        if self.signature is None:
            return b''
        return push_data(self.signature + bytes([hashtype])) + push_data(self.pubkey)


class Transaction:
    def __init__(self, inputs, outputs, version=1, locktime=0):
        """ `inputs` are TxInput; `outputs` a list of (scriptpubkey, amount). """
        self._inputs = list(inputs)
        self._outputs = list(outputs)
        self.version = version
        self.locktime = locktime

    def inputs(self):
        return self._inputs

    def outputs(self):
        return self._outputs

    def is_complete(self):
        return all(inp.signature is not None for inp in self._inputs)

    def _serialize_output(self, script, amount):
        return amount.to_bytes(8, 'little') + var_int(len(script)) + script

    def serialize(self):
        parts = [self.version.to_bytes(4, 'little'), var_int(len(self._inputs))]
        for inp in self._inputs:
            script = inp.script_sig()
            parts.append(inp.outpoint() + var_int(len(script)) + script + inp.sequence.to_bytes(4, 'little'))
        parts.append(var_int(len(self._outputs)))
        parts.extend(self._serialize_output(s, a) for s, a in self._outputs)
        parts.append(self.locktime.to_bytes(4, 'little'))
        return b''.join(parts)

    def txid(self):
        return double_sha256(self.serialize())[::-1].hex()

    def serialize_preimage(self, i, script_code, amount, hashtype=SIGHASH_ALL|SIGHASH_FORKID):
        """ BIP143-style signature preimage as used with SIGHASH_FORKID.
        Only SIGHASH_ALL (without ANYONECANPAY) is supported. """
        if hashtype != SIGHASH_ALL|SIGHASH_FORKID:
            raise ValueError('unsupported sighash type {:#x}'.format(hashtype))
        inp = self._inputs[i]
        hash_prevouts = double_sha256(b''.join(x.outpoint() for x in self._inputs))
        hash_sequence = double_sha256(b''.join(x.sequence.to_bytes(4, 'little') for x in self._inputs))
        hash_outputs = double_sha256(b''.join(self._serialize_output(s, a) for s, a in self._outputs))
        return b''.join((
            self.version.to_bytes(4, 'little'),
            hash_prevouts,
            hash_sequence,
            inp.outpoint(),
            var_int(len(script_code)), script_code,
            amount.to_bytes(8, 'little'),
            inp.sequence.to_bytes(4, 'little'),
            hash_outputs,
            self.locktime.to_bytes(4, 'little'),
            hashtype.to_bytes(4, 'little'),
            ))

    def digest(self, i, script_code, amount, hashtype=SIGHASH_ALL|SIGHASH_FORKID):
        """ The 32-byte message hash that gets signed for input i. """
        return double_sha256(self.serialize_preimage(i, script_code, amount, hashtype))


def tx_from_components(all_components, session_hash):
    """ Returns the tx and a list of indices matching inputs with components"""
    input_indices = []
    assert len(session_hash) == 32
    assert len(Protocol.FUSE_ID) == 4
    prefix = bytes([4, *Protocol.FUSE_ID])
    inputs = []
    outputs = [(bytes([OP_RETURN]) + prefix + bytes([32]) + session_hash, 0)]
    for i,compser in enumerate(all_components):
        comp = pb.Component()
        try:
            comp.ParseFromString(compser)
        except DecodeError as e:
            raise ProtocolViolation("undecodable component") from e
        ctype = comp.WhichOneof('component')
        if ctype == 'input':
            inp = comp.input
            if len(inp.prev_txid) != 32:
                raise ProtocolViolation("bad component prevout")
            if len(inp.pubkey) not in (33, 65):
                raise ProtocolViolation("bad component pubkey")
            inputs.append(TxInput(inp.prev_txid, inp.prev_index, inp.pubkey, inp.amount))
            input_indices.append(i)
        elif ctype == 'output':
            out = comp.output
            if not is_standard_output_script(out.scriptpubkey):
                raise ProtocolViolation("bad component address")
            outputs.append((out.scriptpubkey, out.amount))
        elif ctype != 'blank':
            raise ProtocolViolation("bad component")
    tx = Transaction(inputs, outputs, version=1, locktime=0)
    return tx, input_indices
