# dormir-la-haut-api/dormir_api/db/utils.py
from typing import Any, Dict, Type, Union
from pydantic import BaseModel, TypeAdapter
import logging

logger = logging.getLogger(__name__)


def convert_doc_to_model(doc_id: str, doc_data: Dict[str, Any], Model: Union[Type[BaseModel], TypeAdapter]) -> Any:
    try:
        data = dict(doc_data or {})

        # Firestore sentinels (e.g. SERVER_TIMESTAMP) only show up on data that was never re-read
        for key, value in list(data.items()):
            if str(value).startswith("Sentinel"):
                data.pop(key)

        data["id"] = doc_id
        if isinstance(Model, TypeAdapter):
            return Model.validate_python(data)
        return Model.model_validate(data)
    except Exception as e:
        logger.error("Error in convert_doc_to_model for %s: %s", doc_id, e)
        raise
