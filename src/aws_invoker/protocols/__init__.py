"""Wire protocol codecs selected by the descriptor's ``protocol``."""

from __future__ import annotations

from aws_invoker.descriptor.shapes import PROTOCOL_ALIASES
from aws_invoker.protocols.base import ProtocolCodec, prepare_input
from aws_invoker.protocols.json_rpc import JsonCodec
from aws_invoker.protocols.query import Ec2Codec, QueryCodec
from aws_invoker.protocols.rest import RestJsonCodec, RestXmlCodec

CODECS: dict[str, type] = {
    "query": QueryCodec,
    "ec2": Ec2Codec,
    "json": JsonCodec,
    "rest-json": RestJsonCodec,
    "rest-xml": RestXmlCodec,
}


def get_codec(protocol: str, *, error_markers: tuple[str, ...] | None = None) -> ProtocolCodec:
    """Return a codec instance for ``protocol``.

    ``error_markers`` overrides the root tags (or JSON keys) that flag a
    2xx response as an embedded error.
    """
    name = PROTOCOL_ALIASES.get(protocol, protocol)
    codec_cls = CODECS.get(name)
    if codec_cls is None:
        raise ValueError(f"Unsupported protocol: {protocol}. Supported: {', '.join(CODECS)}")
    return codec_cls(error_markers=error_markers)


__all__ = [
    "CODECS",
    "Ec2Codec",
    "JsonCodec",
    "ProtocolCodec",
    "QueryCodec",
    "RestJsonCodec",
    "RestXmlCodec",
    "get_codec",
    "prepare_input",
]
