"""
MITM transport lifecycle

Owns the mitmproxy master that carries HTTPS interception for mimic
mappings. TLS and certificate handling stay with mitmproxy.
"""

import asyncio
import threading
from typing import Optional
import structlog

from mitmproxy import options
from mitmproxy.tools import dump

from .decision import InterceptDecisionEngine
from .interceptor import MimicInterceptor

logger = structlog.get_logger()


class ProxyServer:
    """
    MITM transport: mitmproxy plus the MimicInterceptor addon

    mitmproxy runs its own event loop in a daemon thread, with the
    MimicInterceptor addon installed.
    """

    def __init__(self, config, engine: InterceptDecisionEngine):
        """
        Build the transport; nothing is bound until start()

        Args:
            config: Application configuration
            engine: Decision engine shared with the other transports
        """
        self.config = config
        self.engine = engine
        self.logger = logger.bind(component="proxy_server")

        self._server_thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._master: Optional[dump.DumpMaster] = None
        self._started = threading.Event()
        self._running = False

        self._interceptor = MimicInterceptor(
            engine,
            substitute_on_response=config.proxy.substitute_on_response
        )

    def start(self, wait_timeout: float = 10.0):
        """
        Bind the MITM listener

        Starts mitmproxy in a separate thread with our addon and waits
        until its master exists.
        """
        if self._running:
            self.logger.warning("Proxy server already running")
            return

        self._started.clear()
        self._running = True
        self._server_thread = threading.Thread(
            target=self._run_proxy,
            daemon=True,
            name="mitmproxy-server"
        )
        self._server_thread.start()

        if not self._started.wait(timeout=wait_timeout) or not self._running:
            self._running = False
            raise RuntimeError("Proxy server did not start")

        self.logger.info(
            "MITM proxy started",
            host=self.config.proxy.proxy_host,
            port=self.config.proxy.proxy_port,
            ca_cert=str(self.config.proxy.ca_cert_dir)
        )

    def stop(self):
        """
        Shut the MITM listener down

        Asks the master to shut down on its own loop, then joins the thread.
        """
        if not self._running:
            self.logger.warning("Proxy server not running")
            return

        self.logger.info("Stopping MITM proxy")

        # Signal shutdown on mitmproxy's own loop
        if self._master and self._loop and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._master.shutdown)

        # The master may take a moment to close its listeners
        if self._server_thread and self._server_thread.is_alive():
            self._server_thread.join(timeout=5)

        self._running = False
        self._master = None
        self._loop = None
        self._server_thread = None

        self.logger.info("MITM proxy stopped")

    def is_running(self) -> bool:
        """True while the mitmproxy thread is alive"""
        return bool(self._running and self._server_thread and self._server_thread.is_alive())

    def get_status(self) -> dict:
        """
        Listener settings and addon statistics

        Returns:
            dict for the status endpoint
        """
        return {
            "running": self.is_running(),
            "host": self.config.proxy.proxy_host,
            "port": self.config.proxy.proxy_port,
            "ca_cert_dir": str(self.config.proxy.ca_cert_dir),
            "substitute_on_response": self.config.proxy.substitute_on_response,
            "statistics": self._interceptor.get_stats()
        }

    def _build_options(self) -> options.Options:
        return options.Options(
            listen_host=self.config.proxy.proxy_host,
            listen_port=self.config.proxy.proxy_port,
            # mitmproxy generates its CA here on first run
            confdir=str(self.config.proxy.ca_cert_dir),
            ssl_insecure=self.config.proxy.ssl_insecure,
        )

    async def _serve(self):
        # DumpMaster binds to the running loop, so it is built here
        self._master = dump.DumpMaster(
            self._build_options(),
            with_termlog=False,
            with_dumper=False
        )
        self._master.addons.add(self._interceptor)
        self._loop = asyncio.get_running_loop()
        self._started.set()
        await self._master.run()

    def _run_proxy(self):
        """
        Thread target: own event loop for mitmproxy

        Blocks until the master shuts down.
        """
        try:
            self.logger.debug("mitmproxy thread starting")
            asyncio.run(self._serve())
            self.logger.debug("mitmproxy thread exited")
        except Exception as e:
            self.logger.error("mitmproxy thread failed", error=str(e))
        finally:
            self._running = False
            self._started.set()

    async def start_async(self):
        """start() without blocking the API loop"""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.start)

    async def stop_async(self):
        """stop() without blocking the API loop"""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.stop)

    def __enter__(self):
        """Start on entry"""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop on exit"""
        self.stop()
        return False
