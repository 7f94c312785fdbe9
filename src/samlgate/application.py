"""The SAML gate: one entrypoint wiring classification to the three handlers."""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping

from .classifier import RequestClassifier, RequestLane
from .config import GateConfig, load_config
from .consumer import AssertionConsumer
from .gate import GateController
from .metadata import MetadataPublisher
from .observability import Observability
from .requests import Request
from .responses import ACCESS_FORBIDDEN, Response
from .saml.engine import AssertionEngine, SamlEngine
from .session import Clock, SessionCodec, utc_now

logger = logging.getLogger(__name__)


class SamlGate:
    """Edge authentication gate.

    ``handle`` returns the incoming :class:`Request` when it should be
    forwarded to the origin, or a :class:`Response` to send to the client.
    All components share one validated :class:`GateConfig`; building a gate
    with an unusable IdP descriptor or certificate raises
    :class:`~samlgate.exceptions.ConfigurationError` immediately.
    """

    def __init__(
        self,
        config: GateConfig,
        *,
        engine: AssertionEngine | None = None,
        codec: SessionCodec | None = None,
        clock: Clock | None = None,
        observability: Observability | None = None,
    ) -> None:
        self.config = config.validate()
        self._clock = clock or utc_now
        self.engine = engine if engine is not None else SamlEngine(self.config, clock=self._clock)
        self.codec = codec or SessionCodec(
            key=self.config.session_key,
            init_vector=self.config.session_iv,
            audience=self.config.audience,
            clock=self._clock,
        )
        self.observability = observability or Observability(self.config.observability)
        self.classifier = RequestClassifier(
            acs_path=self.config.acs_path,
            metadata_path=self.config.metadata_path,
        )
        self.gate = GateController(self.config, codec=self.codec, engine=self.engine)
        self.consumer = AssertionConsumer(self.config, codec=self.codec, engine=self.engine, clock=self._clock)
        self.publisher = MetadataPublisher(self.config, engine=self.engine)

    @classmethod
    def load(
        cls,
        path: str | os.PathLike[str] | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> "SamlGate":
        """Build a gate from :func:`~samlgate.config.load_config`."""

        return cls(load_config(path, environ=environ), **kwargs)

    async def handle(self, request: Request) -> Request | Response:
        lane = self.classifier.classify(request.path)
        observation = self.observability.on_request_start(request, lane=lane.value)
        try:
            outcome = await self._dispatch(lane, request)
        except Exception as exc:
            logger.exception("unhandled error in %s lane for %s %s", lane.value, request.method, request.path)
            self.observability.on_request_error(observation, exc)
            return ACCESS_FORBIDDEN
        self.observability.on_request_success(observation, outcome if isinstance(outcome, Response) else None)
        return outcome

    async def _dispatch(self, lane: RequestLane, request: Request) -> Request | Response:
        if lane is RequestLane.METADATA:
            return self.publisher.publish(request)
        if lane is RequestLane.ASSERTION_CONSUMER:
            return await self.consumer.consume(request)
        return self.gate.check(request)


__all__ = ["SamlGate"]
