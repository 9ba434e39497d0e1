"""
BookPress — Service wiring.

Builds the collaborators once from settings. STORE_BACKEND=memory keeps
everything in-process (local dev, tests); firebase uses Firestore and
Cloud Storage.
"""

from __future__ import annotations

from dataclasses import dataclass

from bookpress.compiler.controller import CompilationJobController
from bookpress.core.config import AppConfig
from bookpress.fulfillment.bridge import FulfillmentBridge
from bookpress.fulfillment.lulu import LuluClient
from bookpress.pdf.assemble import ArtifactAssembler
from bookpress.render.cover import CoverComposer
from bookpress.render.rasterizer import PageRasterizer
from bookpress.render.snapshot import HttpSnapshotter, Snapshotter
from bookpress.render.tokens import RenderTokenIssuer
from bookpress.storage.objects import (
    FirebaseObjectStore,
    InMemoryObjectStore,
    ObjectStore,
    init_firebase,
)
from bookpress.storage.repository import (
    FirestoreJobRepository,
    FirestoreOrderRepository,
    FirestorePageStore,
    InMemoryJobRepository,
    InMemoryOrderRepository,
    InMemoryPageStore,
    JobRepository,
    OrderRepository,
    PageStore,
)
from bookpress.utils.logging import logger


@dataclass
class Services:
    tokens: RenderTokenIssuer
    pages: PageStore
    jobs: JobRepository
    orders: OrderRepository
    store: ObjectStore
    snapshotter: Snapshotter
    rasterizer: PageRasterizer
    assembler: ArtifactAssembler
    covers: CoverComposer
    controller: CompilationJobController
    lulu: LuluClient
    bridge: FulfillmentBridge


def build_services(
    cfg: AppConfig,
    *,
    pages: PageStore | None = None,
    jobs: JobRepository | None = None,
    orders: OrderRepository | None = None,
    store: ObjectStore | None = None,
    snapshotter: Snapshotter | None = None,
    lulu: LuluClient | None = None,
    cover_scale: float = 1.0,
) -> Services:
    """Wire every collaborator. Any of them can be supplied to replace the default."""
    if cfg.storage.backend == "firebase":
        init_firebase(cfg.storage.firebase_credentials, cfg.storage.bucket)
        pages = pages or FirestorePageStore()
        jobs = jobs or FirestoreJobRepository()
        orders = orders or FirestoreOrderRepository()
        store = store or FirebaseObjectStore(cfg.storage.bucket)
    else:
        pages = pages or InMemoryPageStore()
        jobs = jobs or InMemoryJobRepository()
        orders = orders or InMemoryOrderRepository()
        store = store or InMemoryObjectStore()
    logger.info("Storage backend: %s", cfg.storage.backend)

    tokens = RenderTokenIssuer(cfg.render.token_secret, cfg.render.token_ttl)
    snapshotter = snapshotter or HttpSnapshotter(
        cfg.render.snapshot_url, token=cfg.render.snapshot_token, timeout=cfg.render.timeout,
    )
    rasterizer = PageRasterizer(snapshotter, tokens, cfg.render.base_url, timeout=cfg.render.timeout)
    assembler = ArtifactAssembler(store, download_ttl=cfg.storage.download_ttl)
    covers = CoverComposer(
        snapshotter, tokens, store, cfg.render.base_url, timeout=cfg.render.timeout, scale=cover_scale,
    )
    controller = CompilationJobController(
        jobs, pages, rasterizer, assembler, store,
        concurrency=cfg.render.concurrency,
        scale=cfg.render.scale,
        cache_bucket_seconds=cfg.compile.cache_bucket_seconds,
        seconds_per_page=cfg.compile.seconds_per_page,
        merge_overhead_seconds=cfg.compile.merge_overhead_seconds,
    )
    lulu = lulu or LuluClient(cfg.lulu.base_url, cfg.lulu.client_id, cfg.lulu.client_secret)
    bridge = FulfillmentBridge(
        lulu, jobs, orders, covers, store,
        provider_url_ttl=cfg.storage.provider_ttl,
        production_delay=cfg.lulu.production_delay,
        default_contact_email=cfg.lulu.contact_email,
    )

    return Services(
        tokens=tokens,
        pages=pages,
        jobs=jobs,
        orders=orders,
        store=store,
        snapshotter=snapshotter,
        rasterizer=rasterizer,
        assembler=assembler,
        covers=covers,
        controller=controller,
        lulu=lulu,
        bridge=bridge,
    )
