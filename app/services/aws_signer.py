"""
AWS Signature Version 4 signing for SP-API requests, via botocore's SigV4Auth.
The signed headers are returned so the request itself can go out through httpx.
Docs: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html
"""
from datetime import datetime, timezone
from typing import Mapping, Optional, Union

from botocore.auth import SIGV4_TIMESTAMP, SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials


class _ClockedSigV4Auth(SigV4Auth):
    """SigV4Auth that signs at a given instant instead of the wall clock."""

    def __init__(self, credentials: Credentials, service: str, region: str, now: datetime):
        super().__init__(credentials, service, region)
        self.now = now

    def add_auth(self, request: AWSRequest) -> None:
        request.context["timestamp"] = self.now.strftime(SIGV4_TIMESTAMP)
        self._modify_request_before_signing(request)
        canonical_request = self.canonical_request(request)
        string_to_sign = self.string_to_sign(request, canonical_request)
        signature = self.signature(string_to_sign, request)
        self._inject_signature_to_request(request, signature)


class AwsSigV4Signer:
    """Signs requests for one (access key, region, service)."""

    def __init__(self, access_key: str, secret_key: str, region: str, service: str = "execute-api"):
        self.credentials = Credentials(access_key, secret_key)
        self.region = region
        self.service = service

    def _auth(self, now: Optional[datetime]) -> _ClockedSigV4Auth:
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        return _ClockedSigV4Auth(self.credentials, self.service, self.region, now)

    @staticmethod
    def _request(method: str, url: str, headers: Optional[Mapping[str, str]], body: Union[bytes, str, None]) -> AWSRequest:
        payload = body.encode("utf-8") if isinstance(body, str) else (body or b"")
        return AWSRequest(method=method.upper(), url=url, data=payload, headers=dict(headers or {}))

    def canonical_request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        body: Union[bytes, str, None] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Canonical request botocore signs for these inputs (for debugging signature mismatches)."""
        auth = self._auth(now)
        request = self._request(method, url, headers, body)
        request.context["timestamp"] = auth.now.strftime(SIGV4_TIMESTAMP)
        auth._modify_request_before_signing(request)
        return auth.canonical_request(request)

    def sign(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        body: Union[bytes, str, None] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Return the headers to send: the given headers plus X-Amz-Date and Authorization.
        Every given header is signed; host is signed from the URL.
        """
        request = self._request(method, url, headers, body)
        self._auth(now).add_auth(request)
        return dict(request.headers.items())
