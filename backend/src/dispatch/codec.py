import json
from typing import Any, Union

from pydantic import BaseModel, ValidationError

from errors import CodecError
from schemas import Envelope


class JsonCodec:
    '''
    Wire codec for requests and replies.

    Requests arrive as a JSON object {"id", "pattern", "data"}; replies are the
    handler's return value serialized as plain JSON.
    '''

    def decode(self, payload: Union[bytes, str]) -> Envelope:
        try:
            parsed = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise CodecError(f"malformed message: {e}") from e

        if not isinstance(parsed, dict):
            raise CodecError(f"expected a JSON object, got {type(parsed).__name__}")

        try:
            return Envelope.model_validate(parsed)
        except ValidationError as e:
            raise CodecError(f"invalid envelope: {e}") from e

    def encode(self, value: Any) -> bytes:
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        try:
            return json.dumps(value).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CodecError(f"reply is not JSON serializable: {e}") from e
