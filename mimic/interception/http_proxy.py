"""
Plain HTTP forward proxy

An aiohttp.web server that accepts absolute-form proxy requests, consults
the decision engine and either writes mimicked content or relays the
request upstream. HTTPS (CONNECT) belongs to the mitmproxy transport.
"""

from typing import Dict, Optional

import structlog
from aiohttp import web

from mimic.core.exceptions import ForwardFailure, ForwardTimeout
from .decision import Action, InterceptDecisionEngine
from .forwarder import UpstreamForwarder
from .responder import build_substituted_response, send_substituted
from .url_extractor import extract_target_url

logger = structlog.get_logger()


class AiohttpResponseWriter:
    """ResponseWriter over an aiohttp StreamResponse"""

    def __init__(self, request: web.Request):
        self.request = request
        self.response = web.StreamResponse()

    @property
    def headers_sent(self) -> bool:
        return self.response.prepared

    async def write_head(self, status_code: int, headers: Dict[str, str]):
        self.response.set_status(status_code)
        for key, value in headers.items():
            self.response.headers[key] = value
        await self.response.prepare(self.request)

    async def write(self, chunk: bytes):
        if not self.response.prepared:
            await self.response.prepare(self.request)
        await self.response.write(chunk)

    async def end(self):
        await self.response.write_eof()


class HTTPProxyServer:
    """
    HTTP forward proxy transport

    Runs on the caller's event loop (the API server's) via an AppRunner.
    """

    def __init__(self, config, engine: InterceptDecisionEngine, forwarder: Optional[UpstreamForwarder] = None):
        """
        Args:
            config: Application configuration
            engine: Decision engine shared with the other transports
            forwarder: Upstream client; built from config when omitted
        """
        self.config = config
        self.engine = engine
        self.forwarder = forwarder or UpstreamForwarder(
            timeout_seconds=config.http_proxy.forward_timeout_seconds
        )
        self.logger = logger.bind(component="http_proxy")

        self._runner: Optional[web.AppRunner] = None

        self.stats = {
            "requests": 0,
            "served": 0,
            "forwarded": 0,
            "gateway_timeouts": 0,
            "bad_gateways": 0
        }

    def build_app(self) -> web.Application:
        app = web.Application(
            client_max_size=self.config.http_proxy.max_body_size_mb * 1024 * 1024
        )
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    async def handle(self, request: web.Request) -> web.StreamResponse:
        """Handle one proxied request"""
        self.stats["requests"] += 1

        if request.method == "CONNECT":
            return web.json_response(
                {
                    "error": "CONNECT not supported",
                    "details": f"Use the MITM proxy on port {self.config.proxy.proxy_port} for HTTPS"
                },
                status=501
            )

        url = extract_target_url(request.method, request.raw_path, request.headers, secure=request.secure)
        decision = await self.engine.decide(url)

        if decision.action is Action.SERVE:
            return await self._serve(request, decision)

        if decision.action is Action.PASS_THROUGH and decision.url is None:
            self.logger.warning("Cannot determine target URL", path=request.raw_path)
            return web.json_response({"error": "Cannot determine target URL"}, status=400)

        # FORWARD goes to the decided target; PASS_THROUGH relays unmodified
        target = decision.target if decision.action is Action.FORWARD else decision.url
        return await self._forward(request, target)

    async def _serve(self, request: web.Request, decision) -> web.StreamResponse:
        substituted = build_substituted_response(decision.mapping)
        writer = AiohttpResponseWriter(request)
        await send_substituted(writer, substituted, target_url=decision.url)
        self.stats["served"] += 1

        self.logger.info(
            "Returning mimicked content",
            url=decision.url,
            mapping_id=decision.mapping.id,
            content_type=substituted.content_type,
            size=len(substituted.body)
        )
        return writer.response

    async def _forward(self, request: web.Request, target: str) -> web.StreamResponse:
        body = await request.read() if request.body_exists else None
        try:
            upstream = await self.forwarder.forward(
                request.method,
                target,
                headers=request.headers.items(),
                body=body
            )
        except ForwardTimeout as e:
            self.stats["gateway_timeouts"] += 1
            return web.json_response({"error": "Proxy timeout", "details": str(e)}, status=504)
        except ForwardFailure as e:
            self.stats["bad_gateways"] += 1
            return web.json_response({"error": "Proxy error", "details": str(e)}, status=502)

        self.stats["forwarded"] += 1
        response = web.Response(status=upstream.status, reason=upstream.reason or None, body=upstream.body)
        for key, value in upstream.headers:
            # Length is recomputed for the relayed body
            if key.lower() == "content-length":
                continue
            response.headers.add(key, value)
        return response

    async def start(self):
        """Bind the proxy on the configured host and port"""
        if self._runner is not None:
            self.logger.warning("HTTP proxy already running")
            return

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(
            self._runner,
            self.config.http_proxy.http_proxy_host,
            self.config.http_proxy.http_proxy_port
        )
        await site.start()

        self.logger.info(
            "HTTP proxy started",
            host=self.config.http_proxy.http_proxy_host,
            port=self.config.http_proxy.http_proxy_port,
            forward_timeout=self.config.http_proxy.forward_timeout_seconds
        )

    async def stop(self):
        if self._runner is None:
            return
        await self._runner.cleanup()
        await self.forwarder.close()
        self._runner = None
        self.logger.info("HTTP proxy stopped")

    def is_running(self) -> bool:
        return self._runner is not None

    def get_status(self) -> dict:
        return {
            "running": self.is_running(),
            "host": self.config.http_proxy.http_proxy_host,
            "port": self.config.http_proxy.http_proxy_port,
            "statistics": self.stats.copy(),
            "forwarder": self.forwarder.stats.copy()
        }
