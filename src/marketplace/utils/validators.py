from typing import Any, List, Mapping, Union


class ValidationUtils:
    """
    Helpers for turning schema errors into itemized, user-facing messages

    marshmallow reports nested failures as nested dicts keyed by field name
    and list index, e.g. {"items": {0: {"price": ["Missing data ..."]}}}.
    The API reports them as a flat list so clients can show every problem
    at once.
    """

    @classmethod
    def flatten_errors(cls, messages: Union[Mapping, List, str], path: str = "") -> List[str]:
        """
        Flatten marshmallow error messages

        Example:
            {"items": {0: {"price": ["Missing data for required field."]}}}
            -> ["items[0].price: Missing data for required field."]
        """
        if isinstance(messages, str):
            return [f"{path}: {messages}" if path else messages]

        if isinstance(messages, list):
            flat: List[str] = []
            for message in messages:
                flat.extend(cls.flatten_errors(message, path))
            return flat

        flat = []
        for key, value in messages.items():
            flat.extend(cls.flatten_errors(value, cls._join(path, key)))
        return flat

    @staticmethod
    def _join(path: str, key: Any) -> str:
        if isinstance(key, int):
            return f"{path}[{key}]"
        if key == "_schema":
            return path
        return f"{path}.{key}" if path else str(key)
