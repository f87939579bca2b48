import os
import re
import unittest

from .. import fusion_pb2 as pb

FIELD_RE = re.compile(r'^(?:(?:required|optional|repeated)\s+)?(?:map<[^>]+>|[\w.]+)\s+(\w+)\s*=\s*(\d+)\s*;')


def read_proto_fields(path):
    """ Returns {message full name: {(field name, number), ...}} as written
    in a .proto file. Only handles the layout used by fusion.proto. """
    with open(path) as f:
        text = f.read()
    text = re.sub(r'/\*.*?\*/', '', text, flags=re.S)
    messages = {}
    stack = []
    for line in text.splitlines():
        line = line.split('//')[0].strip()
        if not line:
            continue
        m = re.match(r'^message\s+(\w+)\s*\{', line)
        if m:
            stack.append(m.group(1))
            messages['.'.join(n for n in stack if n)] = set()
            continue
        if re.match(r'^oneof\s+\w+\s*\{', line):
            stack.append(None)
            continue
        if line.startswith('}'):
            stack.pop()
            continue
        m = FIELD_RE.match(line)
        if m and stack:
            messages['.'.join(n for n in stack if n)].add((m.group(1), int(m.group(2))))
    assert not stack, 'unbalanced braces'
    return messages


def descriptor_fields(descriptors, prefix=''):
    messages = {}
    for d in descriptors:
        if d.GetOptions().map_entry:
            continue
        name = prefix + d.name
        messages[name] = {(f.name, f.number) for f in d.fields}
        messages.update(descriptor_fields(d.nested_types, name + '.'))
    return messages


class TestSchema(unittest.TestCase):

    def test_generated_module_matches_proto(self):
        path = os.path.join(os.path.dirname(pb.__file__), 'fusion.proto')
        from_proto = read_proto_fields(path)
        generated = descriptor_fields(pb.DESCRIPTOR.message_types_by_name.values())
        self.assertEqual(pb.DESCRIPTOR.package, 'fusion')
        self.assertEqual(sorted(generated), sorted(from_proto))
        for name, fields in from_proto.items():
            self.assertEqual(generated[name], fields, name)

    def test_wrappers(self):
        # every submessage a wrapper can carry is in its one 'msg' oneof
        for outer in (pb.ClientMessage, pb.ServerMessage, pb.CovertMessage, pb.CovertResponse):
            oneof = outer.DESCRIPTOR.oneofs_by_name['msg']
            self.assertEqual(len(oneof.fields), len(outer.DESCRIPTOR.fields))
        self.assertEqual(pb.ServerMessage.DESCRIPTOR.fields_by_name['error'].number, 15)
        self.assertEqual(pb.ServerMessage.DESCRIPTOR.fields_by_name['restartround'].number, 14)


if __name__ == '__main__':
    unittest.main()
