from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from errors import ValidationFailed
from repositories import Store

M = TypeVar("M", bound=BaseModel)


def first_error(errors: Sequence[Dict[str, Any]]) -> str:
    if not errors:
        return "Invalid request"
    error = errors[0]
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    message = str(error.get("msg", "Invalid value"))
    return f"{'.'.join(loc)}: {message}" if loc else message


def validated(model: Type[M], data: Dict[str, Any]) -> M:
    """Validate a merged document against a collection schema, as a 400 on failure."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed(first_error(exc.errors()))


def check_category(store: Store, category_id: str, subcategories: Optional[List[str]] = None) -> Dict[str, Any]:
    """Products and deals hang off a top-level category; subcategories must be its children."""
    category = store.categories.get(category_id)
    if not category or category.get("parent_category"):
        raise ValidationFailed("Invalid category ID or category is a subcategory")
    for sub_id in subcategories or []:
        sub = store.categories.get(sub_id)
        if not sub or sub.get("parent_category") != str(category["_id"]):
            raise ValidationFailed("Invalid subcategories or they do not belong to the specified category")
    return category
