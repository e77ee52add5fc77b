import pytest
from mcap.reader import make_reader

from mcaptool.output.writer import MultiplexWriter, OutputOpenError


def _chunk_channel_sets(path) -> list[set[int]]:
    with open(path, "rb") as f:
        summary = make_reader(f).get_summary()
    return [set(chunk_index.message_index_offsets) for chunk_index in summary.chunk_indexes]


def _read_messages(path):
    with open(path, "rb") as f:
        return [(channel.topic, message) for _, channel, message in make_reader(f).iter_messages(log_time_order=False)]


def _write_video_and_index(path, seal: bool) -> tuple[int, int]:
    with MultiplexWriter(str(path)) as writer:
        schema_id = writer.register_schema("test.Frame", "jsonschema", b"{}")
        video = writer.register_channel("video", "json", schema_id, {"video:codec": "avc1.640028"})
        keyframes = writer.register_channel("video/keyframes", "", 0)
        for sequence in range(5):
            assert writer.append_message(video, sequence, sequence * 1_000, b"{}")
        if seal:
            writer.seal_chunk()
        for sequence in (0, 3):
            assert writer.append_message(keyframes, sequence, sequence * 1_000, b"")
    return video, keyframes


def test_sealed_chunk_separates_channels(tmp_path):
    path = tmp_path / "sealed.mcap"
    video, keyframes = _write_video_and_index(path, seal=True)

    chunks = _chunk_channel_sets(path)

    assert {video} in chunks
    assert {keyframes} in chunks
    assert not any(video in chunk and keyframes in chunk for chunk in chunks)


def test_without_seal_channels_share_a_chunk(tmp_path):
    path = tmp_path / "unsealed.mcap"
    video, keyframes = _write_video_and_index(path, seal=False)

    assert _chunk_channel_sets(path) == [{video, keyframes}]


def test_messages_round_trip(tmp_path):
    path = tmp_path / "messages.mcap"
    _write_video_and_index(path, seal=True)

    messages = _read_messages(path)

    video = [m for topic, m in messages if topic == "video"]
    keyframes = [m for topic, m in messages if topic == "video/keyframes"]
    assert [m.sequence for m in video] == [0, 1, 2, 3, 4]
    assert [m.log_time for m in video] == [m.publish_time for m in video]
    assert [(m.sequence, m.log_time, m.data) for m in keyframes] == [(0, 0, b""), (3, 3_000, b"")]


def test_channel_metadata_and_schemaless_channel(tmp_path):
    path = tmp_path / "channels.mcap"
    _write_video_and_index(path, seal=True)

    with open(path, "rb") as f:
        summary = make_reader(f).get_summary()
    channels = {c.topic: c for c in summary.channels.values()}

    assert channels["video"].metadata == {"video:codec": "avc1.640028"}
    assert channels["video/keyframes"].schema_id == 0
    assert summary.schemas[channels["video"].schema_id].name == "test.Frame"


def test_write_failure_is_not_fatal(tmp_path, monkeypatch):
    path = tmp_path / "failing.mcap"
    with MultiplexWriter(str(path)) as writer:
        channel = writer.register_channel("video", "json", 0)
        assert writer.append_message(channel, 0, 0, b"{}")

        def _fail(**kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(writer._writer, "add_message", _fail)
        assert not writer.append_message(channel, 1, 1, b"{}")
        monkeypatch.undo()

        assert writer.append_message(channel, 2, 2, b"{}")

    assert writer.messages_written == 2
    assert writer.write_errors == 1
    assert [m.sequence for _, m in _read_messages(path)] == [0, 2]


def test_open_failure_raises_output_open_error(tmp_path):
    writer = MultiplexWriter(str(tmp_path / "missing_dir" / "out.mcap"))

    with pytest.raises(OutputOpenError):
        writer.open()
    assert not writer.is_open


def test_operations_require_open_writer(tmp_path):
    writer = MultiplexWriter(str(tmp_path / "closed.mcap"))

    with pytest.raises(RuntimeError):
        writer.register_channel("video", "json", 0)


def test_close_is_idempotent(tmp_path):
    writer = MultiplexWriter(str(tmp_path / "twice.mcap"))
    writer.open()
    writer.close()
    writer.close()

    assert not writer.is_open


def test_metadata_record(tmp_path):
    path = tmp_path / "metadata.mcap"
    with MultiplexWriter(str(path), profile="index") as writer:
        writer.write_metadata("mcapindex", {"startTime": "1", "endTime": "2"})

    with open(path, "rb") as f:
        reader = make_reader(f)
        assert reader.get_header().profile == "index"
        records = list(reader.iter_metadata())
    assert [(r.name, r.metadata) for r in records] == [("mcapindex", {"startTime": "1", "endTime": "2"})]
