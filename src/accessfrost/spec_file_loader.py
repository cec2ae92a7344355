from typing import Dict, List

import cerberus
import yaml

from accessfrost.error import SpecLoadingError
from accessfrost.spec_schemas.access_providers import (
    ACCESS_PROVIDER_FILE_SCHEMA,
    ACCESS_PROVIDER_SCHEMA,
)
from accessfrost.types import AccessFrostSpecSchema

VALIDATION_ERR_MSG = 'Spec error: {} "{}", field "{}": {}'


def ensure_valid_schema(spec: Dict) -> List[str]:
    """
    Ensure that the provided spec has no schema errors.

    Returns a list with all the errors found.
    """
    error_messages = []

    if not isinstance(spec, dict):
        return ["Spec error: the file must contain a mapping"]

    validator = cerberus.Validator(yaml.safe_load(ACCESS_PROVIDER_FILE_SCHEMA))
    validator.validate(spec)
    for section, err_msg in validator.errors.items():
        if isinstance(err_msg[0], str):
            error_messages.append(f"Spec error: {section}: {err_msg[0]}")
            continue

        for error in err_msg[0].values():
            error_messages.append(f"Spec error: {section}: {error[0]}")

    if error_messages:
        return error_messages

    access_provider_validator = cerberus.Validator(
        yaml.safe_load(ACCESS_PROVIDER_SCHEMA)
    )

    seen_ids = set()
    for index, access_provider in enumerate(spec.get("access_providers") or []):
        access_provider_id = access_provider.get("id", f"#{index}")

        access_provider_validator.validate(access_provider)
        for field, err_msg in access_provider_validator.errors.items():
            error_messages.append(
                VALIDATION_ERR_MSG.format(
                    "access_provider", access_provider_id, field, err_msg[0]
                )
            )

        if access_provider_id in seen_ids:
            error_messages.append(
                VALIDATION_ERR_MSG.format(
                    "access_provider", access_provider_id, "id", "duplicate id"
                )
            )
        seen_ids.add(access_provider_id)

    return error_messages


def load_spec(spec_path: str) -> AccessFrostSpecSchema:
    """
    Load an access provider file.

    If the file is not found or at least an error is found during validation,
    raise a SpecLoadingError with all the error messages found.

    Returns the file contents as a dictionary if everything is OK.
    """
    try:
        with open(spec_path, "r") as stream:
            spec = yaml.safe_load(stream)
    except FileNotFoundError:
        raise SpecLoadingError(f"Spec File {spec_path} not found")

    error_messages = ensure_valid_schema(spec)
    if error_messages:
        raise SpecLoadingError("\n".join(error_messages))

    return spec
