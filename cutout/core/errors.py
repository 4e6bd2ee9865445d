from __future__ import annotations

from starlette import status


class CutoutError(Exception):
    """Base class for errors raised by the editing pipeline."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    title: str = "Bad Request"


class InvalidFileTypeError(CutoutError):
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    title = "Unsupported Media Type"


class UploadTooLargeError(CutoutError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    title = "Upload Too Large"


class InvalidCropError(CutoutError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    title = "Invalid Crop"


class DegenerateCropError(CutoutError):
    """Raised when a crop collapses to zero pixels in either dimension."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    title = "Empty Selection"


class DecodeError(CutoutError):
    title = "Undecodable Image"


class RasterizationError(CutoutError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    title = "Rasterization Failed"


class FormatConversionError(CutoutError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    title = "Format Conversion Failed"


class GatewayError(CutoutError):
    """Base class for failures of the remote inference service."""

    status_code = status.HTTP_502_BAD_GATEWAY
    title = "Bad Gateway"


class DetectionError(GatewayError):
    pass


class ParseError(DetectionError):
    """Detection payload was not valid JSON."""


class SchemaError(DetectionError):
    """Detection payload lacked a numeric x, y, width or height."""


class BackgroundRemovalError(GatewayError):
    pass


class NoCandidateError(BackgroundRemovalError):
    pass


class NoImageDataError(BackgroundRemovalError):
    pass


class TextDetectionError(GatewayError):
    pass


class OperationFailedError(CutoutError):
    """Generic, user-facing wrapper for a failed remote operation."""

    status_code = status.HTTP_502_BAD_GATEWAY
    title = "Operation Failed"


class NoImageLoadedError(CutoutError):
    status_code = status.HTTP_409_CONFLICT
    title = "No Image Loaded"


class SessionBusyError(CutoutError):
    status_code = status.HTTP_409_CONFLICT
    title = "Session Busy"


class SessionNotFoundError(CutoutError):
    """Raised when a session id cannot be resolved."""

    status_code = status.HTTP_404_NOT_FOUND
    title = "Not Found"
