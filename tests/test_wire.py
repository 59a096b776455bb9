"""
Envelope <-> frame conversion and the codec registry.
"""

import pytest

from meshnode import Envelope, MeshNode, MessageBuilder, MsgType, pack_frame, unpack_frame
from meshnode.codecs import Codecs
from meshnode.errors import DecodeError
from meshnode.wire import from_wire, to_wire


def test_to_wire_flattens_payload_into_body():
    env = Envelope(src="n1", dest="c1", type=MsgType.ECHO_OK, msg_id=4, in_reply_to=2,
                   payload={"echo": "hi"})

    assert to_wire(env) == {
        "src": "n1",
        "dest": "c1",
        "body": {"type": "echo_ok", "msg_id": 4, "in_reply_to": 2, "echo": "hi"},
    }


def test_to_wire_omits_missing_ids():
    env = Envelope(src="n1", dest="n2", type=MsgType.TOPOLOGY_OK)
    assert to_wire(env)["body"] == {"type": "topology_ok"}


def test_from_wire_parses_init():
    env = from_wire({
        "src": "c0",
        "dest": "n1",
        "body": {"type": "init", "msg_id": 1, "node_id": "n1", "node_ids": ["n1", "n2"]},
    })

    assert env.type is MsgType.INIT
    assert env.msg_id == 1
    assert env.in_reply_to is None
    assert env.payload == {"node_id": "n1", "node_ids": ["n1", "n2"]}


def test_unknown_type_is_kept_as_string():
    env = from_wire({"src": "c0", "dest": "n1", "body": {"type": "txn", "msg_id": 3}})
    assert env.type == "txn"
    assert not isinstance(env.type, MsgType)


@pytest.mark.parametrize("obj", [
    [],
    {"src": "c0", "dest": "n1"},
    {"src": "c0", "dest": "n1", "body": {"msg_id": 1}},
    {"dest": "n1", "body": {"type": "echo"}},
])
def test_malformed_messages_raise_decode_error(obj):
    with pytest.raises(DecodeError):
        from_wire(obj)


def test_unpack_garbage_raises_decode_error():
    with pytest.raises(DecodeError):
        unpack_frame(b"{not json")


def test_pack_frame_is_a_single_line():
    env = Envelope(src="n1", dest="c1", type=MsgType.ECHO_OK, msg_id=1, in_reply_to=1,
                   payload={"echo": "two\nlines"})
    frame = pack_frame(env)
    assert b"\n" not in frame
    assert unpack_frame(frame).payload["echo"] == "two\nlines"


def test_msgpack_codec_carries_poll_replies():
    codec = Codecs.get("msgpack")
    env = Envelope(src="n1", dest="c1", type=MsgType.POLL_OK, msg_id=9, in_reply_to=3,
                   payload={"msgs": {"k1": [[0, 10], [1, 11]]}})

    decoded = unpack_frame(pack_frame(env, codec), codec)

    assert decoded == env


def test_unknown_codec():
    with pytest.raises(ValueError):
        Codecs.get("yaml")


def test_builder_requires_destination_and_type():
    with pytest.raises(ValueError):
        MessageBuilder("n1").body(MsgType.ECHO, echo="x").build()
    with pytest.raises(ValueError):
        MessageBuilder("n1").to("n2").build()


def test_builder_reply_swaps_addresses():
    request = Envelope(src="c3", dest="n1", type=MsgType.ECHO, msg_id=12, payload={"echo": "x"})

    reply = MessageBuilder("n1").reply(request, MsgType.ECHO_OK, echo="x").msg_id(40).build()

    assert (reply.src, reply.dest, reply.in_reply_to, reply.msg_id) == ("n1", "c3", 12, 40)


def test_builder_rejects_reply_without_own_id():
    request = Envelope(src="c3", dest="n1", type=MsgType.ECHO, msg_id=12)
    with pytest.raises(ValueError):
        MessageBuilder("n1").reply(request, MsgType.ECHO_OK).build()


def test_codecs_resolve_names_and_instances():
    msgpack_codec = Codecs.get("msgpack")
    assert Codecs.resolve("msgpack") is msgpack_codec
    assert Codecs.resolve(msgpack_codec) is msgpack_codec
    assert Codecs.resolve("json").line_safe
    assert not msgpack_codec.line_safe


def test_stdio_refuses_a_binary_codec():
    with pytest.raises(ValueError, match="msgpack"):
        MeshNode("echo", codec="msgpack")
