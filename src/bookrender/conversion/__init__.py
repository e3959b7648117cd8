from .invoker import (
    ConversionFailure,
    ConversionInvoker,
    ConversionToolError,
    ConvertedArtifact,
    UnsupportedFormatError,
    build_command,
)

__all__ = [
    "ConversionFailure",
    "ConversionInvoker",
    "ConversionToolError",
    "ConvertedArtifact",
    "UnsupportedFormatError",
    "build_command",
]
