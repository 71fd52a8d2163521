import azure.functions as func
import uuid as _uuid, logging
from utils.cors import cors_response, json_response
from auth.deps import current_user_from_request
from services import image_service as ims
from services.errors import NotLinked

logger = logging.getLogger(__name__)
bp = func.Blueprint()


def _image_payload(req: func.HttpRequest, field: str):
    """(bytes, content_type) from a multipart file part or a JSON base64 data URI."""
    ctype = req.headers.get("content-type") or req.headers.get("Content-Type") or ""
    if "multipart/form-data" in ctype:
        _, files = ims.parse_multipart(req)
        upload = files.get(field) or next(iter(files.values()), None)
        if not upload:
            raise ims.BadRequest("The image is required")
        return upload["data"], upload["content_type"]

    try:
        body = req.get_json()
    except ValueError:
        body = None
    value = body.get(field) if isinstance(body, dict) else None
    if not value:
        raise ims.BadRequest("The image is required")
    if not isinstance(value, str):
        raise ims.BadRequest("Expected a base64 image data URI")
    return ims.decode_data_uri(value)


@bp.function_name(name="CarImage")
@bp.route(route="cars/{car_id}/image", methods=["POST", "DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def car_image(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    user = current_user_from_request(req)
    if not user:
        return json_response("Unauthorized", 401)

    try:
        cid = _uuid.UUID(req.route_params["car_id"])
    except (KeyError, ValueError):
        return json_response("Invalid car ID", 400)

    if req.method == "POST":
        try:
            data, content_type = _image_payload(req, "car_image")
            rec = ims.upload_car_image(user.id, cid, data, content_type)
            return json_response("Car image updated", 200, data=rec)
        except ims.BadRequest as e:
            return json_response("Validation error", 422, errors={"car_image": [str(e)]})
        except NotLinked as e:
            return json_response(e.message, 404)
        except Exception:
            logger.exception("upload car image failed for user=%s car=%s", user.id, cid)
            return json_response("Upload failed", 500)

    try:
        rec = ims.delete_car_image(user.id, cid)
        return json_response("Car image deleted", 200, data=rec)
    except NotLinked as e:
        return json_response(e.message, 404)
    except Exception:
        logger.exception("delete car image failed for user=%s car=%s", user.id, cid)
        return json_response("Delete failed", 500)


@bp.function_name(name="ProfileImage")
@bp.route(route="user/profile-image", methods=["POST", "DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def profile_image(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    user = current_user_from_request(req)
    if not user:
        return json_response("Unauthorized", 401)

    if req.method == "POST":
        try:
            data, content_type = _image_payload(req, "profile_image")
            rec = ims.upload_profile_image(user.id, data, content_type)
            return json_response("Profile image updated", 200, data=rec)
        except ims.BadRequest as e:
            return json_response("Validation error", 422, errors={"profile_image": [str(e)]})
        except Exception:
            logger.exception("upload profile image failed for user=%s", user.id)
            return json_response("Upload failed", 500)

    try:
        rec = ims.delete_profile_image(user.id)
        return json_response("Profile image deleted", 200, data=rec)
    except Exception:
        logger.exception("delete profile image failed for user=%s", user.id)
        return json_response("Delete failed", 500)
