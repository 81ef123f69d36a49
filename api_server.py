"""
api_server.py — HTTP API consumed by the web front-end.

Endpoints:
  GET  /api/search?q=…&gold=…&maxPrice=…&minRating=…   → ranked listings (text search)
  POST /api/search/image   (multipart, field "image")    → ranked listings (photo search)
  POST /api/contact-supplier  (JSON)                     → stores a buyer inquiry
  GET  /health                                           → plain-text health check

Search responses always carry {success, products, tokensUsed, fallbackUsed,
source, detectedLabels}. A bad filter value is a 400 with a readable message;
anything unexpected is logged and returned as a generic 500 — the buyer never
sees a raw exception.
"""
from __future__ import annotations

import logging
from typing import Optional

from aiohttp import web

import config
import database as db
from catalog_sources.browser_pool import BrowserPool
from catalog_sources.local_catalog import LocalCatalogSource
from catalog_sources.marketplace_scraper import MarketplaceScraperSource
from pipeline import ImageInput, SourcingPipeline, TextInput
from providers.manager import classifier_from_config
from query_normalizer import FilterInput, InvalidFilter

logger = logging.getLogger(__name__)

PIPELINE_KEY = web.AppKey("pipeline", SourcingPipeline)

_CORS_HEADERS = {
    "Access-Control-Allow-Origin":  "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


# ── Middlewares ────────────────────────────────────────────────────────────────

@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """The front-end runs on a different origin (Next.js dev server)."""
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            # e.g. 413 from an oversized upload; the browser must still see the status
            exc.headers.update(_CORS_HEADERS)
            raise
    response.headers.update(_CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except InvalidFilter as exc:
        return _error(400, str(exc))
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return _error(500, "Search failed. Please try again.")


# ── Request handlers ───────────────────────────────────────────────────────────

def _filters_from(params) -> FilterInput:
    return FilterInput(
        gold_only=params.get("gold", params.get("goldOnly")),
        max_price=params.get("maxPrice"),
        min_rating=params.get("minRating"),
    )


async def handle_search(request: web.Request) -> web.Response:
    """Text search."""
    q = (request.query.get("q") or "").strip()
    if not q:
        return _error(400, "Missing search query (q).")

    pipeline = request.app[PIPELINE_KEY]
    result = await pipeline.run(TextInput(q, _filters_from(request.query)))
    return web.json_response(result.to_dict())


async def handle_image_search(request: web.Request) -> web.Response:
    """Photo search: multipart upload with the image in the "image" field."""
    form = await request.post()
    upload = form.get("image")
    if not isinstance(upload, web.FileField):
        return _error(400, "No image uploaded.")

    image_bytes = upload.file.read()
    if not image_bytes:
        return _error(400, "Uploaded image is empty.")

    pipeline = request.app[PIPELINE_KEY]
    result = await pipeline.run(ImageInput(image_bytes, _filters_from(form)))
    return web.json_response(result.to_dict())


async def handle_contact_supplier(request: web.Request) -> web.Response:
    """Store a buyer inquiry. No email is sent from here."""
    try:
        body = await request.json()
    except ValueError:
        return _error(400, "Request body must be JSON.")
    if not isinstance(body, dict):
        return _error(400, "Request body must be a JSON object.")

    name        = str(body.get("name") or "").strip()
    email       = str(body.get("email") or "").strip()
    supplier_id = str(body.get("supplierId") or "").strip()
    if not (name and email and supplier_id):
        return _error(400, "name, email and supplierId are required.")
    if "@" not in email:
        return _error(400, "email looks invalid.")

    quantity: Optional[int] = None
    raw_qty = body.get("quantity")
    if raw_qty not in (None, ""):
        try:
            quantity = int(raw_qty)
        except (TypeError, ValueError):
            return _error(400, "quantity must be a whole number.")
        if quantity <= 0:
            return _error(400, "quantity must be positive.")

    inquiry_id = await db.save_inquiry(
        supplier_id=supplier_id,
        product_id=str(body.get("productId") or ""),
        buyer_name=name,
        buyer_email=email,
        quantity=quantity,
        message=str(body.get("message") or ""),
    )
    logger.info("Inquiry #%d stored for supplier %s", inquiry_id, supplier_id)
    return web.json_response({"success": True, "message": "Inquiry sent", "inquiryId": inquiry_id})


async def handle_health(request: web.Request) -> web.Response:
    """Health check — returns 200 OK. Use with uptime monitors."""
    total = await db.get_inquiry_count()
    latest = await db.get_recent_inquiries(limit=1)
    last_seen = latest[0].created_at.isoformat(timespec="seconds") if latest else "never"
    return web.Response(
        text=f"OK — {total} inquiries stored, last {last_seen}",
        content_type="text/plain",
    )


# ── App factory ────────────────────────────────────────────────────────────────

def build_pipeline(pool: Optional[BrowserPool] = None) -> SourcingPipeline:
    """Wire the pipeline from config.py. Pass pool=None to skip the live scrape."""
    local = (
        LocalCatalogSource.from_json_file(config.LOCAL_CATALOG_PATH)
        if config.LOCAL_CATALOG_PATH
        else LocalCatalogSource()
    )
    logger.info("Local catalog: %d listings", len(local))
    live = None
    if pool is not None and config.USE_LIVE_SCRAPE:
        live = MarketplaceScraperSource(
            pool,
            search_url=config.MARKETPLACE_SEARCH_URL,
            timeout_s=config.FETCH_TIMEOUT_SECONDS,
            max_entries=config.SCRAPE_MAX_ENTRIES,
        )
    return SourcingPipeline(
        config.PipelineConfig.from_module(),
        local_source=local,
        live_source=live,
        classifier=classifier_from_config(),
    )


def build_web_app(pipeline: SourcingPipeline) -> web.Application:
    app = web.Application(
        middlewares=[cors_middleware, error_middleware],
        client_max_size=config.MAX_UPLOAD_BYTES,
    )
    app[PIPELINE_KEY] = pipeline
    app.router.add_get("/health",               handle_health)
    app.router.add_get("/api/search",           handle_search)
    app.router.add_post("/api/search/image",    handle_image_search)
    app.router.add_post("/api/contact-supplier", handle_contact_supplier)
    return app


async def start_api_server(pipeline: SourcingPipeline) -> web.AppRunner:
    """Start the web server. Returns runner so caller can shut it down cleanly."""
    app    = build_web_app(pipeline)
    # cancel the handler (and its live scrape) when the buyer disconnects
    runner = web.AppRunner(app, access_log=logger, handler_cancellation=True)
    await runner.setup()
    site = web.TCPSite(runner, config.API_HOST, config.API_PORT)
    await site.start()
    logger.info(
        "API listening on %s:%d  (live scrape: %s)",
        config.API_HOST,
        config.API_PORT,
        "on" if pipeline.live_enabled else "off",
    )
    return runner
