import azure.functions as func
import uuid as _uuid, logging
from utils.cors import cors_response, json_response
from utils.validation import validate_link_request, validate_create_request, car_attrs
from auth.deps import current_user_from_request
from services import image_service as ims
from services.errors import CarError
from services.linking_service import link_existing, create_new
from services.primacy_service import list_user_cars, set_primary, set_last_used, unlink

logger = logging.getLogger(__name__)
bp = func.Blueprint()


def _error(e: CarError) -> func.HttpResponse:
    errors = {e.field: [e.message]} if e.field else None
    return json_response(e.message, e.status, errors=errors)


def _car_id(req: func.HttpRequest):
    try:
        return _uuid.UUID(req.route_params["car_id"])
    except (KeyError, ValueError):
        return None


def _read_json(req: func.HttpRequest) -> dict:
    try:
        body = req.get_json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@bp.function_name(name="UserCars")
@bp.route(route="cars/user", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def user_cars(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    user = current_user_from_request(req)
    if not user:
        return json_response("Unauthorized", 401)

    try:
        return json_response("Cars retrieved", 200, data=list_user_cars(user.id))
    except Exception:
        logger.exception("list cars failed for user=%s", user.id)
        return json_response("Could not load your cars", 500)


@bp.function_name(name="LinkCar")
@bp.route(route="cars/link", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def link_car(req: func.HttpRequest) -> func.HttpResponse:
    """
    Claim an existing car by license plate + PIN.

    201 with {"car", "is_primary"}; 404 unknown plate, 401 wrong PIN,
    409 already linked, 422 malformed input.
    """
    if req.method == "OPTIONS":
        return cors_response("", 204)

    user = current_user_from_request(req)
    if not user:
        return json_response("Unauthorized", 401)

    body = _read_json(req)
    errors = validate_link_request(body)
    if errors:
        return json_response("Validation error", 422, errors=errors)

    try:
        result = link_existing(user.id, body["license_plate"], body["pin_code"])
    except CarError as e:
        return _error(e)
    except Exception:
        logger.exception("link car failed for user=%s", user.id)
        return json_response("Could not link the car", 500)
    return json_response("Car linked", 201, data=result)


@bp.function_name(name="CreateCar")
@bp.route(route="cars/create", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def create_car(req: func.HttpRequest) -> func.HttpResponse:
    """
    Register a new car and link it to the caller.

    Accepts JSON (image as a base64 data URI in `car_image`) or
    multipart/form-data (image as the `car_image` file part).
    """
    if req.method == "OPTIONS":
        return cors_response("", 204)

    user = current_user_from_request(req)
    if not user:
        return json_response("Unauthorized", 401)

    image = None
    ctype = req.headers.get("content-type") or req.headers.get("Content-Type") or ""
    try:
        if "multipart/form-data" in ctype:
            body, files = ims.parse_multipart(req)
            upload = files.get("car_image")
            if upload:
                ims.validate_image(upload["data"], upload["content_type"])
                image = {"data": upload["data"], "content_type": upload["content_type"]}
        else:
            body = _read_json(req)
    except ims.BadRequest as e:
        return json_response("Validation error", 422, errors={"car_image": [str(e)]})

    errors = validate_create_request(body)
    if errors:
        return json_response("Validation error", 422, errors=errors)

    if image is None and body.get("car_image"):
        if ims.is_data_uri(body["car_image"]):
            try:
                data, content_type = ims.decode_data_uri(body["car_image"])
                image = {"data": data, "content_type": content_type}
            except ims.BadRequest as e:
                logger.warning("Ignoring car_image for user=%s: %s", user.id, e)
        else:
            logger.warning("Ignoring car_image for user=%s: not a base64 image", user.id)

    try:
        result = create_new(user.id, car_attrs(body), body["pin_code"], image=image)
    except CarError as e:
        return _error(e)
    except Exception:
        logger.exception("create car failed for user=%s", user.id)
        return json_response("Could not create the car", 500)
    return json_response("Car created and linked", 201, data=result)


@bp.function_name(name="SetPrimaryCar")
@bp.route(route="cars/{car_id}/primary", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def primary_car(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    user = current_user_from_request(req)
    if not user:
        return json_response("Unauthorized", 401)

    cid = _car_id(req)
    if not cid:
        return json_response("Invalid car ID", 400)

    try:
        result = set_primary(user.id, cid)
    except CarError as e:
        return _error(e)
    except Exception:
        logger.exception("set primary failed for user=%s car=%s", user.id, cid)
        return json_response("Could not set the primary car", 500)
    return json_response("Car set as primary", 200, data=result)


@bp.function_name(name="SetLastUsedCar")
@bp.route(route="cars/{car_id}/last-used", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def last_used_car(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    user = current_user_from_request(req)
    if not user:
        return json_response("Unauthorized", 401)

    cid = _car_id(req)
    if not cid:
        return json_response("Invalid car ID", 400)

    try:
        result = set_last_used(user.id, cid)
    except CarError as e:
        return _error(e)
    except Exception:
        logger.exception("set last used failed for user=%s car=%s", user.id, cid)
        return json_response("Could not update the last used car", 500)
    return json_response("Last used car updated", 200, data=result)


@bp.function_name(name="UnlinkCar")
@bp.route(route="cars/{car_id}/unlink", methods=["DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def unlink_car(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    user = current_user_from_request(req)
    if not user:
        return json_response("Unauthorized", 401)

    cid = _car_id(req)
    if not cid:
        return json_response("Invalid car ID", 400)

    try:
        unlink(user.id, cid)
    except CarError as e:
        return _error(e)
    except Exception:
        logger.exception("unlink failed for user=%s car=%s", user.id, cid)
        return json_response("Could not unlink the car", 500)
    return json_response("Car unlinked", 200)
