# File: backend/geocheckin/api/locations.py
"""Class location management API."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from geocheckin import db
from geocheckin.models.class_location import ClassLocation
from geocheckin.utils.decorators import teacher_required
from geocheckin.utils.errors import ErrorCode
from geocheckin.utils.helpers import error_response, success_response
from geocheckin.utils.validators import Validator

locations_bp = Blueprint('locations', __name__)

EDITABLE_FIELDS = ('name', 'address', 'description', 'latitude', 'longitude', 'radius_meters')


@locations_bp.route('', methods=['GET'])
@jwt_required()
def get_locations():
    """List active class locations."""
    try:
        locations = ClassLocation.active().all()
        return success_response(data={'locations': [location.to_dict() for location in locations]})

    except Exception as e:
        current_app.logger.exception('Error fetching locations')
        return error_response(f"Error fetching locations: {str(e)}", 500)


@locations_bp.route('', methods=['POST'])
@jwt_required()
@teacher_required
def create_location():
    """Register a new class location."""
    try:
        data = request.get_json(silent=True) or {}

        validation = Validator.validate_location_data(data)
        if not validation['is_valid']:
            return error_response('; '.join(validation['errors']), 400, code=ErrorCode.VALIDATION_ERROR)

        location = ClassLocation(
            name=data['name'].strip(),
            address=data['address'].strip(),
            description=data.get('description'),
            latitude=data['latitude'],
            longitude=data['longitude'],
            radius_meters=data.get('radius_meters') or current_app.config['DEFAULT_LOCATION_RADIUS_METERS'],
            created_by=get_jwt_identity()
        )
        location.save()

        current_app.logger.info(f"Class location {location.id} created: {location.name}")
        return success_response(
            data={'location': location.to_dict()},
            message="Location created successfully",
            status_code=201
        )

    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Error creating location')
        return error_response(f"Error creating location: {str(e)}", 500)


@locations_bp.route('/<int:location_id>', methods=['PUT'])
@jwt_required()
@teacher_required
def update_location(location_id):
    """Update a class location."""
    try:
        location = ClassLocation.get_by_id(location_id)
        if not location or not location.is_active:
            return error_response("Location not found", 404, code=ErrorCode.NOT_FOUND)

        data = request.get_json(silent=True) or {}
        validation = Validator.validate_location_data(data, partial=True)
        if not validation['is_valid']:
            return error_response('; '.join(validation['errors']), 400, code=ErrorCode.VALIDATION_ERROR)

        location.update(**{key: data[key] for key in EDITABLE_FIELDS if key in data})

        return success_response(data={'location': location.to_dict()}, message="Location updated successfully")

    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Error updating location')
        return error_response(f"Error updating location: {str(e)}", 500)


@locations_bp.route('/<int:location_id>', methods=['DELETE'])
@jwt_required()
@teacher_required
def delete_location(location_id):
    """Retire a class location; existing sessions keep resolving it."""
    try:
        location = ClassLocation.get_by_id(location_id)
        if not location or not location.is_active:
            return error_response("Location not found", 404, code=ErrorCode.NOT_FOUND)

        location.soft_delete()

        current_app.logger.info(f"Class location {location.id} retired")
        return success_response(message="Location deleted successfully")

    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Error deleting location')
        return error_response(f"Error deleting location: {str(e)}", 500)
