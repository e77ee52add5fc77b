"""
MCAP output with explicit chunk control.

Wraps ``mcap.writer.Writer`` with the operations the converter and the
splitter need: schema/channel registration, non-fatal message appends,
forced chunk boundaries, and a close that reports failures.
"""

import logging
from typing import IO

from mcap.writer import CompressionType, Writer

from mcaptool import __version__
from mcaptool.configs import settings

logger = logging.getLogger(__name__)

LIBRARY_NAME = f"mcaptool {__version__}"


class OutputOpenError(OSError):
    """The output file could not be created."""

    pass


class OutputCloseError(OSError):
    """The output summary could not be written; the file is unusable."""

    pass


class MultiplexWriter:
    """
    Owns one MCAP output file.

    Operations must be called in order: ``open()``, registrations and
    appends, optional ``seal_chunk()`` calls, then ``close()``. Schema and
    channel ids are assigned by the MCAP writer.

    Usage:
        with MultiplexWriter("out.mcap") as writer:
            schema_id = writer.register_schema("foxglove.CompressedImage", "protobuf", fd_set)
            channel_id = writer.register_channel("video", "protobuf", schema_id, {})
            writer.append_message(channel_id, 0, timestamp, payload)
    """

    def __init__(
        self,
        path: str,
        chunk_size: int | None = None,
        compression: CompressionType = CompressionType.NONE,
        profile: str = "",
        log: logging.Logger | None = None,
    ) -> None:
        self.path = path
        self.chunk_size = chunk_size or settings.chunk_size
        self.compression = compression
        self.profile = profile
        self._log = log or logger
        self._stream: IO[bytes] | None = None
        self._writer: Writer | None = None
        self.messages_written = 0
        self.write_errors = 0

    def __enter__(self) -> "MultiplexWriter":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    def open(self) -> None:
        """Create the output file and write the MCAP header."""
        try:
            self._stream = open(self.path, "wb")
        except OSError as e:
            self._log.error('[writer] Failed to open output file "%s": %s', self.path, e)
            raise OutputOpenError(f'Failed to open output file "{self.path}": {e}') from e

        self._writer = Writer(
            self._stream,
            chunk_size=self.chunk_size,
            compression=self.compression,
        )
        self._writer.start(profile=self.profile, library=LIBRARY_NAME)

    def register_schema(self, name: str, encoding: str, data: bytes) -> int:
        """Add a schema record. Every call registers a new schema."""
        return self._require_writer().register_schema(name=name, encoding=encoding, data=data)

    def register_channel(
        self,
        topic: str,
        message_encoding: str,
        schema_id: int,
        metadata: dict[str, str] | None = None,
    ) -> int:
        """Add a channel record. ``schema_id`` 0 means schemaless."""
        return self._require_writer().register_channel(
            topic=topic,
            message_encoding=message_encoding,
            schema_id=schema_id,
            metadata=metadata or {},
        )

    def append_message(
        self,
        channel_id: int,
        sequence: int,
        timestamp: int,
        data: bytes,
        publish_time: int | None = None,
    ) -> bool:
        """
        Append one message with ``log_time`` = *timestamp*.

        Returns False after logging when the write fails; a single failed
        message never aborts the output.
        """
        writer = self._require_writer()
        try:
            writer.add_message(
                channel_id=channel_id,
                log_time=timestamp,
                data=data,
                publish_time=timestamp if publish_time is None else publish_time,
                sequence=sequence,
            )
        except Exception as e:
            self.write_errors += 1
            self._log.error(
                "[writer] Failed to write message %d on channel %d (%d bytes): %s",
                sequence,
                channel_id,
                len(data),
                e,
            )
            return False

        self.messages_written += 1
        return True

    def write_metadata(self, name: str, metadata: dict[str, str]) -> None:
        """Add a metadata record."""
        self._require_writer().add_metadata(name=name, data=metadata)

    def seal_chunk(self) -> None:
        """Flush the open chunk so the next message lands in a new one."""
        self._require_writer().flush()

    def close(self) -> None:
        """Write the summary section and close the file. Safe to call twice."""
        if self._writer is None:
            return

        writer, stream = self._writer, self._stream
        self._writer = None
        self._stream = None
        try:
            writer.finish()
        except Exception as e:
            self._log.error('[writer] Failed to finalize "%s": %s', self.path, e)
            raise OutputCloseError(f'Failed to finalize "{self.path}": {e}') from e
        finally:
            stream.close()

        self._log.debug('[writer] Closed "%s" (%d messages)', self.path, self.messages_written)

    def _require_writer(self) -> Writer:
        if self._writer is None:
            raise RuntimeError("MultiplexWriter is not open")
        return self._writer
