from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import boto3
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet, InvalidToken

from .models import State, ToggleState, Viewer


logger = logging.getLogger(__name__)


def _fernet_for(key: str | bytes) -> Fernet:
    # Fernet wants the urlsafe base64 key as bytes
    return Fernet(key.encode("utf-8") if isinstance(key, str) else key)


def _decode_state(data: bytes) -> State:
    return State.model_validate(json.loads(data.decode("utf-8")))


@dataclass(frozen=True)
class S3ObjectRef:
    bucket: str
    key: str

    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class S3PreferenceStore:
    """
    Viewer preferences kept as one Fernet-encrypted JSON object in S3.

    - `read()` returns `(state, etag)`; a missing object reads as an empty document.
    - `lookup(viewer)` is the read path used while rendering: it returns the
      viewer's `ToggleState`, loading the document at most once per store instance.
    - Read only: the preference UI owns writes, and a lapsed toggle is never
      cleared from here.
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        key: str,
        fernet_key: str | bytes,
        region_name: Optional[str] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._obj = S3ObjectRef(bucket=bucket, key=key)
        self._fernet = _fernet_for(fernet_key)
        self._snapshot: Optional[State] = None

    def read(self) -> Tuple[State, Optional[str]]:
        """Fetch and decrypt the preference document.

        Raises ValueError when the object cannot be decrypted or parsed, and
        re-raises any S3 error other than a missing key.
        """
        try:
            resp = self._s3.get_object(Bucket=self._obj.bucket, Key=self._obj.key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                logger.debug("No preference document at %s", self._obj.uri())
                return (State.empty(), None)
            raise

        try:
            plaintext = self._fernet.decrypt(resp["Body"].read())
        except InvalidToken as ex:
            raise ValueError(f"Cannot decrypt preferences at {self._obj.uri()}") from ex
        try:
            state = _decode_state(plaintext)
        except Exception as ex:
            raise ValueError(f"Malformed preference document at {self._obj.uri()}") from ex
        return (state, resp.get("ETag"))

    def lookup(self, viewer: Viewer) -> ToggleState:
        if not viewer.is_registered or viewer.user_id is None:
            return ToggleState()
        if self._snapshot is None:
            self._snapshot, _ = self.read()
        return self._snapshot.toggle_for(viewer.user_id)

