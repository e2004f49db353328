import argparse
import asyncio
import json
import logging
import sys

import httpx

from docsearch.config.settings import settings
from docsearch.container import configure_container
from docsearch.core.models.query import FunnelOptions, SearchMode, SearchOptions, StageToggles
from docsearch.core.protocols.embedder import EmbedderProtocol
from docsearch.core.services.engine import RetrievalEngine

logger = logging.getLogger(__name__)


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def check_chroma() -> bool:
    url = f"http://{settings.chroma_host}:{settings.chroma_port}/api/v2/heartbeat"
    try:
        resp = httpx.get(url, timeout=5)
        return resp.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Chroma not reachable: {e}")
        return False


def check_ollama() -> bool:
    """Check the Ollama expansion model is available."""
    model = settings.llm_model
    base_url = settings.llm_base_url.replace("/v1", "")

    try:
        resp = httpx.get(f"{base_url}/api/tags", timeout=5)
    except httpx.HTTPError as e:
        logger.error(f"Ollama not reachable: {e}")
        return False

    if resp.status_code != 200:
        return False

    models = [m["name"] for m in resp.json().get("models", [])]
    if not any(model in m for m in models):
        logger.error(f"Model {model} is not pulled")
        return False
    return True


def cmd_health(args) -> int:
    container = configure_container(settings)

    report = {"chroma": check_chroma()}
    if settings.llm_expansion_enabled:
        report["ollama"] = check_ollama()

    try:
        container.resolve(EmbedderProtocol).warmup()
        report["embedder"] = True
    except Exception as e:
        logger.error(f"Embedder warmup failed: {e}")
        report["embedder"] = False

    _print_json(report)
    return 0 if all(report.values()) else 1


def cmd_search(args) -> int:
    engine = configure_container(settings).resolve(RetrievalEngine)
    response = asyncio.run(
        engine.search(
            args.query,
            args.scope,
            SearchOptions(
                limit=args.limit,
                threshold=args.threshold,
                mode=SearchMode(args.mode),
                document_ids=args.document_ids,
            ),
        )
    )
    _print_json(response.to_dict())
    return 0 if response.success else 1


def cmd_multi_stage(args) -> int:
    engine = configure_container(settings).resolve(RetrievalEngine)
    stages = StageToggles(
        approximate=not args.no_approximate,
        semantic_filter=not args.no_filter,
        contextual_rerank=not args.no_rerank,
        diversity=not args.no_diversity,
    )
    response = asyncio.run(
        engine.multi_stage_search(
            args.query,
            args.scope,
            FunnelOptions(limit=args.limit, stages=stages, document_ids=args.document_ids),
        )
    )
    _print_json(response.to_dict())
    return 0 if response.success else 1


def cmd_multi_query(args) -> int:
    engine = configure_container(settings).resolve(RetrievalEngine)
    response = asyncio.run(
        engine.multi_query_search(args.queries, args.scope, args.limit, SearchMode(args.mode))
    )
    _print_json(response.to_dict())
    return 0 if response.success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m docsearch.presentation.cli")
    parser.add_argument("--log-level", default=settings.log_level)
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Single-pass search")
    search.add_argument("query")
    search.add_argument("--scope", required=True)
    search.add_argument("--limit", type=int, default=None)
    search.add_argument("--threshold", type=float, default=None)
    search.add_argument("--mode", choices=[m.value for m in SearchMode], default="vector")
    search.add_argument("--document-ids", nargs="*", default=None)
    search.set_defaults(func=cmd_search)

    funnel = sub.add_parser("multi-stage", help="Multi-stage funnel search")
    funnel.add_argument("query")
    funnel.add_argument("--scope", required=True)
    funnel.add_argument("--limit", type=int, default=None)
    funnel.add_argument("--document-ids", nargs="*", default=None)
    funnel.add_argument("--no-approximate", action="store_true")
    funnel.add_argument("--no-filter", action="store_true")
    funnel.add_argument("--no-rerank", action="store_true")
    funnel.add_argument("--no-diversity", action="store_true")
    funnel.set_defaults(func=cmd_multi_stage)

    multi = sub.add_parser("multi-query", help="Merge several worded searches")
    multi.add_argument("queries", nargs="+")
    multi.add_argument("--scope", required=True)
    multi.add_argument("--limit", type=int, default=settings.search_default_limit)
    multi.add_argument("--mode", choices=[m.value for m in SearchMode], default="vector")
    multi.set_defaults(func=cmd_multi_query)

    health = sub.add_parser("health", help="Check Chroma, Ollama and the embedder")
    health.set_defaults(func=cmd_health)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
