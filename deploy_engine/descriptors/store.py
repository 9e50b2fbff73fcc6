# deploy_engine/descriptors/store.py
"""Resource descriptor store - parses and validates resource definitions."""

import copy
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Set, Union

from pydantic import ValidationError

from deploy_engine.core.errors import DescriptorValidationError
from deploy_engine.core.models import ResourceDescriptor, ResourceType
from deploy_engine.core.schemas import DefinitionDocument, ResourceDefinition
from deploy_engine.core.validation import validate_descriptor_set

logger = logging.getLogger(__name__)

USER_DATA_KEY = "user_data"
USER_DATA_VERSION_KEY = "user_data_version"


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def hash_blob(blob: Union[str, bytes]) -> Dict[str, Any]:
    """Replace an opaque setup blob by its digest and size."""
    data = blob.encode("utf-8") if isinstance(blob, str) else blob
    return {
        "sha256": hashlib.sha256(data).hexdigest(),
        "size": len(data),
    }


def compute_fingerprint(
    resource_type: ResourceType,
    properties: Mapping[str, Any],
    depends_on: Iterable[str],
) -> str:
    payload = {
        "type": resource_type.value,
        "properties": properties,
        "depends_on": sorted(depends_on),
    }
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def normalize_properties(properties: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep-copy properties and turn `user_data` scripts into hashed blobs.

    The optional `user_data_version` is folded into the blob record so a
    version bump alone is visible as drift.
    """
    normalized = copy.deepcopy(properties)

    blob = normalized.get(USER_DATA_KEY)
    if isinstance(blob, (str, bytes)):
        record = hash_blob(blob)
        version = normalized.pop(USER_DATA_VERSION_KEY, None)
        if version is not None:
            record["version"] = version
        normalized[USER_DATA_KEY] = record

    return normalized


def is_blob_record(value: Any) -> bool:
    return isinstance(value, dict) and "sha256" in value and "size" in value


def restorable_properties(recorded: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Properties that can be sent back to the provider from a state snapshot.

    Snapshots only hold the digest of a setup script, so hashed `user_data`
    is left out and the provider keeps whatever script it has.
    """
    return {
        key: value for key, value in recorded.items()
        if not (key == USER_DATA_KEY and is_blob_record(value))
    }


class DescriptorStore:
    """
    Turns raw definitions into validated, immutable descriptors.

    Pure: loading never touches persisted state or the provider.
    """

    def load(self, definitions: Iterable[Mapping[str, Any]]) -> Set[ResourceDescriptor]:
        """
        Parse and validate definitions.

        Raises:
            DescriptorValidationError: listing every problem found
        """
        problems: List[str] = []
        descriptors: List[ResourceDescriptor] = []

        for index, raw in enumerate(definitions):
            label = raw.get("id") if isinstance(raw, Mapping) else None
            label = label or f"definition[{index}]"

            if not isinstance(raw, Mapping):
                problems.append(f"{label}: definition must be a mapping")
                continue

            try:
                definition = ResourceDefinition.model_validate(raw)
            except ValidationError as e:
                for err in e.errors():
                    where = ".".join(str(p) for p in err["loc"]) or "definition"
                    problems.append(f"{label}: {where}: {err['msg']}")
                continue

            try:
                resource_type = ResourceType.parse(definition.type)
            except ValueError:
                problems.append(f"{definition.id}: unknown resource type '{definition.type}'")
                continue

            properties = copy.deepcopy(definition.properties)
            recorded = normalize_properties(properties)
            depends_on = tuple(dict.fromkeys(definition.depends_on))
            try:
                fingerprint = compute_fingerprint(resource_type, recorded, depends_on)
            except (TypeError, ValueError):
                problems.append(f"{definition.id}: properties must be JSON-serializable")
                continue

            descriptors.append(
                ResourceDescriptor(
                    resource_id=definition.id,
                    resource_type=resource_type,
                    properties=properties,
                    depends_on=depends_on,
                    fingerprint=fingerprint,
                    timeout_seconds=definition.timeout_seconds,
                    recorded_properties=recorded if recorded != properties else None,
                )
            )

        problems.extend(validate_descriptor_set(descriptors))

        if problems:
            for problem in problems:
                logger.debug(f"[descriptors] {problem}")
            ids = {p.split(":", 1)[0] for p in problems}
            raise DescriptorValidationError(
                f"{len(problems)} invalid definition(s): " + "; ".join(problems),
                resource_id=ids.pop() if len(ids) == 1 else None,
                problems=problems,
            )

        logger.info(f"[descriptors] Loaded {len(descriptors)} resource definition(s)")
        return set(descriptors)

    def load_file(self, path: Union[str, Path]) -> Set[ResourceDescriptor]:
        """Load a JSON document: a list of definitions or {"resources": [...]}."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise DescriptorValidationError(f"Cannot read {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise DescriptorValidationError(f"{path} is not valid JSON: {e}") from e

        if isinstance(data, dict):
            try:
                data = DefinitionDocument.model_validate(data).resources
            except ValidationError as e:
                raise DescriptorValidationError(f"{path}: {e}") from e

        if not isinstance(data, list):
            raise DescriptorValidationError(
                f"{path}: expected a list of resources or {{\"resources\": [...]}}"
            )

        return self.load(data)
