"""
Split an MCAP file into one file per channel.

Each channel's messages are copied into ``<output_dir>/<topic>.mcap``
together with its schema. An extra ``index.mcap`` holds every schema and
channel (annotated with the file that carries its messages and their
count) plus a ``mcapindex`` metadata record with the overall time range,
so a viewer can open the index and fetch only the channels it needs.
"""

import logging
import os
import re
from dataclasses import dataclass, field

from mcap.exceptions import McapError
from mcap.reader import make_reader
from mcap.records import Channel, Schema
from mcap.writer import CompressionType

from mcaptool.const import (
    INDEX_FILENAME_KEY,
    INDEX_MESSAGE_COUNT_KEY,
    INDEX_METADATA_NAME,
    INDEX_PROFILE,
)
from mcaptool.output.writer import MultiplexWriter

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.mcap"

_NON_ALNUM_RE = re.compile(r"[^0-9A-Za-z]")


class SplitError(Exception):
    """The input cannot be split."""

    pass


@dataclass
class InputSummary:
    profile: str
    schemas: dict[int, Schema]
    channels: dict[int, Channel]
    message_start_time: int
    message_end_time: int


@dataclass
class ChannelOutput:
    filename: str
    channel: Channel
    schema: Schema | None
    writer: MultiplexWriter
    channel_id: int = 0
    message_count: int = 0


@dataclass
class SplitResult:
    index_filename: str
    # topic -> (output filename, message count)
    outputs: dict[str, tuple[str, int]] = field(default_factory=dict)


def topic_to_filename(topic: str) -> str:
    """
    Map a topic to a file stem: leading '/' stripped, non-alphanumerics
    replaced by '_', and ``index`` renamed so it cannot clash with the index file.
    """
    name = topic.lstrip("/")
    if not name:
        raise SplitError(f'Failed to sanitize topic name for use as a filename: "{topic}"')
    if name == "index":
        name = "index_"
    return _NON_ALNUM_RE.sub("_", name)


def _is_compressed_schema(schema: Schema | None) -> bool:
    return schema is not None and "compressed" in schema.name.lower()


def read_input_summary(path: str) -> InputSummary:
    """Read header and summary of *path*, scanning all records if it has no summary."""
    with open(path, "rb") as f:
        reader = make_reader(f)
        profile = reader.get_header().profile
        summary = reader.get_summary()

        if summary is not None:
            if summary.statistics is None:
                raise SplitError("Failed to retrieve MCAP statistics after summary parsing")
            return InputSummary(
                profile=profile,
                schemas=dict(summary.schemas),
                channels=dict(summary.channels),
                message_start_time=summary.statistics.message_start_time,
                message_end_time=summary.statistics.message_end_time,
            )

    logger.info('[split] "%s" has no summary section, scanning all messages', path)
    schemas: dict[int, Schema] = {}
    channels: dict[int, Channel] = {}
    start_time = end_time = None
    with open(path, "rb") as f:
        for schema, channel, message in make_reader(f).iter_messages(log_time_order=False):
            channels.setdefault(channel.id, channel)
            if schema is not None:
                schemas.setdefault(schema.id, schema)
            start_time = message.log_time if start_time is None else min(start_time, message.log_time)
            end_time = message.log_time if end_time is None else max(end_time, message.log_time)

    return InputSummary(
        profile=profile,
        schemas=schemas,
        channels=channels,
        message_start_time=start_time or 0,
        message_end_time=end_time or 0,
    )


def _open_channel_outputs(summary: InputSummary, output_dir: str, log: logging.Logger) -> dict[int, ChannelOutput]:
    outputs: dict[int, ChannelOutput] = {}
    filenames: set[str] = set()
    try:
        for channel_id, channel in sorted(summary.channels.items()):
            schema = summary.schemas.get(channel.schema_id) if channel.schema_id else None

            name = topic_to_filename(channel.topic)
            if name in filenames:
                raise SplitError(f'Failed to create output file: duplicate filename "{name}"')
            filenames.add(name)

            filename = os.path.join(output_dir, f"{name}.mcap")
            compression = CompressionType.NONE if _is_compressed_schema(schema) else CompressionType.ZSTD
            writer = MultiplexWriter(filename, compression=compression, profile=summary.profile, log=log)
            output = ChannelOutput(filename=filename, channel=channel, schema=schema, writer=writer)
            outputs[channel_id] = output
            writer.open()

            # Ids are reassigned by each output writer
            schema_id = 0
            if schema is not None:
                schema_id = writer.register_schema(schema.name, schema.encoding, schema.data)
            output.channel_id = writer.register_channel(
                channel.topic, channel.message_encoding, schema_id, dict(channel.metadata)
            )
    except Exception:
        for output in outputs.values():
            output.writer.close()
        raise
    return outputs


def _write_index(summary: InputSummary, outputs: dict[int, ChannelOutput], output_dir: str, log: logging.Logger) -> str:
    index_filename = os.path.join(output_dir, INDEX_FILENAME)
    with MultiplexWriter(index_filename, profile=INDEX_PROFILE, log=log) as index_writer:
        index_writer.write_metadata(
            INDEX_METADATA_NAME,
            {
                "startTime": str(summary.message_start_time),
                "endTime": str(summary.message_end_time),
            },
        )
        for output in outputs.values():
            schema_id = 0
            if output.schema is not None:
                schema_id = index_writer.register_schema(
                    output.schema.name, output.schema.encoding, output.schema.data
                )
            metadata = dict(output.channel.metadata)
            metadata[INDEX_FILENAME_KEY] = output.filename
            metadata[INDEX_MESSAGE_COUNT_KEY] = str(output.message_count)
            index_writer.register_channel(output.channel.topic, output.channel.message_encoding, schema_id, metadata)
    return index_filename


def split(input_path: str, output_dir: str, log: logging.Logger | None = None) -> SplitResult:
    """
    Split *input_path* into per-channel MCAP files under *output_dir*.

    Raises:
        OSError: the input cannot be read or an output cannot be created.
        SplitError: the input is not a readable MCAP file, topics cannot be
            mapped to unique filenames, statistics are missing, or a message
            cannot be copied.
    """
    log = log or logger
    try:
        summary = read_input_summary(input_path)
    except McapError as e:
        log.error('[split] Failed to open input file "%s": %s', input_path, e)
        raise SplitError(f'Failed to open input file "{input_path}": {e}') from e
    os.makedirs(output_dir, exist_ok=True)

    outputs = _open_channel_outputs(summary, output_dir, log)
    try:
        with open(input_path, "rb") as f:
            for _, channel, message in make_reader(f).iter_messages():
                output = outputs.get(channel.id)
                if output is None:
                    raise SplitError(f"Message references unknown channel {channel.id}")
                if not output.writer.append_message(
                    output.channel_id,
                    message.sequence,
                    message.log_time,
                    message.data,
                    publish_time=message.publish_time,
                ):
                    raise SplitError(f'Failed to write message to "{output.filename}"')
                output.message_count += 1
    except McapError as e:
        raise SplitError(f'Failed to read messages from "{input_path}": {e}') from e
    finally:
        for output in outputs.values():
            output.writer.close()

    index_filename = _write_index(summary, outputs, output_dir, log)

    result = SplitResult(index_filename=index_filename)
    for output in outputs.values():
        result.outputs[output.channel.topic] = (output.filename, output.message_count)
        log.info('[split] %s: %d messages -> "%s"', output.channel.topic, output.message_count, output.filename)
    return result
