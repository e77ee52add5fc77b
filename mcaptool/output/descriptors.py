"""
Protobuf schema resolution for MCAP ``protobuf`` schemas.

MCAP stores a protobuf schema as a serialized ``FileDescriptorSet`` that
must contain the message's file and every file it imports, with imports
listed before the files that use them.
"""

import logging

from google.protobuf import descriptor_pb2
from google.protobuf.descriptor import Descriptor, FileDescriptor

logger = logging.getLogger(__name__)


def _add_file_with_dependencies(
    fd_set: descriptor_pb2.FileDescriptorSet,
    visited: set[str],
    file_descriptor: FileDescriptor,
) -> None:
    """Depth-first: append each unvisited dependency, then *file_descriptor* itself."""
    for dependency in file_descriptor.dependencies:
        if dependency.name in visited:
            continue
        visited.add(dependency.name)
        _add_file_with_dependencies(fd_set, visited, dependency)
    file_descriptor.CopyToProto(fd_set.file.add())


def build_file_descriptor_set(message_descriptor: Descriptor) -> bytes:
    """
    Serialize the ``FileDescriptorSet`` needed to decode *message_descriptor*.

    Files shared by several imports (diamond dependencies) appear once.
    The output is byte-identical across calls for the same message type.
    """
    fd_set = descriptor_pb2.FileDescriptorSet()
    root = message_descriptor.file
    visited = {root.name}
    _add_file_with_dependencies(fd_set, visited, root)
    logger.debug(
        "[descriptors] %s: %s",
        message_descriptor.full_name,
        ", ".join(f.name for f in fd_set.file),
    )
    return fd_set.SerializeToString(deterministic=True)
