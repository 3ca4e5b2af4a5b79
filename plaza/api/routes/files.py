"""File serving routes for uploaded images."""

from apiflask import APIBlueprint
from flask import Response

from plaza.db.blob_store import get_blob_store
from plaza.exceptions import NotFoundError
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("files", __name__, url_prefix="/api", tag="Files")


@api.route("/files/<path:key>", methods=["GET"])
@api.doc(
    summary="Get an uploaded image",
    description="Returns the image as binary data with its content-type header.",
    responses=[404, 429],
)
def get_file(key: str) -> Response:
    """Serve an uploaded avatar, post image or chat picture.

    Public so that image URLs can be used directly in <img> tags. Keys
    contain a random component and are not guessable.
    """
    result = get_blob_store().get(key)
    if result is None:
        logger.debug("File not found", extra={"key": key})
        raise NotFoundError("File", {"key": key})

    data, mime_type = result
    logger.debug("Returning file", extra={"key": key, "file_type": mime_type, "size": len(data)})
    return Response(
        data,
        mimetype=mime_type,
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
