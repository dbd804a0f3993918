"""Entry point orchestration for the Buildkite build stats tool."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from .buildkite_client import BuildkiteClient
from .cache import Cache, MemoryCache, RedisCache
from .cli import parse_args
from .config import DEFAULT_REFRESH_HISTORY, DEFAULT_SCRAPE_HISTORY, Config, load_config
from .errors import ApiError, AuthenticationError, CacheError, ConfigurationError
from .query import Query, compile_queries
from .refresh import RefreshEngine
from .report import ReportEvaluator
from .stats import generate_report
from .store import BuildStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4
EXIT_CACHE = 5


def _build_cache(config: Config) -> Cache:
    if config.redis_url:
        return RedisCache.from_url(config.redis_url)
    return MemoryCache()


def run_report(config: Config, queries: Sequence[Query], store: BuildStore, client: BuildkiteClient) -> None:
    """Evaluate all queries and print the text report."""
    evaluator = ReportEvaluator(
        queries=queries,
        store=store,
        source=client,
        history=config.scrape_history,
        write_back_horizon=config.refresh_history,
    )
    results = evaluator.evaluate()

    failed = [result.name for result in results if result.failed]
    if failed:
        logger.warning("Some reports could not be evaluated", extra={"reports": failed})

    print(generate_report(organization=config.organization, results=results))


def run_refresh(config: Config, store: BuildStore, client: BuildkiteClient) -> None:
    """Rewrite the trailing refresh window into the cache."""
    if not config.redis_url:
        logger.warning("Refreshing an in-process cache; results are discarded when the process exits")

    from_time = datetime.now(timezone.utc) - config.refresh_history
    print(f"Starting refresh between [{from_time.isoformat()}, now)...")
    buckets = RefreshEngine(source=client, store=store).refresh_cache(from_time)
    print(f"Refresh finished successfully ({buckets} buckets written).")


def orchestrate(argv: Optional[Sequence[str]] = None) -> int:
    """Run the requested command and map failures to exit codes.

    Report definitions are compiled before any network or cache access, so a
    misconfigured report stops the process before anything is evaluated.
    """
    client: Optional[BuildkiteClient] = None
    try:
        args = parse_args(argv)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        config = load_config(
            organization=args.buildkite_org,
            token=args.buildkite_token,
            scrape_history=getattr(args, "scrape_history", DEFAULT_SCRAPE_HISTORY),
            refresh_history=getattr(args, "refresh_history", DEFAULT_REFRESH_HISTORY),
            cache_ttl=args.cache_ttl,
            bucket_size=args.bucket_size,
            redis_url=args.redis_url,
            reports=getattr(args, "reports", None) or (),
        )

        queries = compile_queries(config.reports) if args.command == "report" else []

        client = BuildkiteClient(config=config)
        store = BuildStore(
            cache=_build_cache(config),
            organization=config.organization,
            ttl=config.cache_ttl,
            bucket_size=config.bucket_size,
        )

        if args.command == "report":
            run_report(config, queries, store, client)
        else:
            run_refresh(config, store, client)
        return EXIT_OK
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        logger.error("Authentication error: %s", exc)
        return EXIT_AUTHENTICATION
    except ApiError as exc:
        logger.error("Buildkite API error: %s", exc)
        return EXIT_API
    except CacheError as exc:
        logger.error("Cache error: %s", exc)
        return EXIT_CACHE
    except Exception:
        logger.exception("Unexpected error")
        return EXIT_UNEXPECTED
    finally:
        if client is not None:
            client.close()


def main() -> None:
    raise SystemExit(orchestrate())


if __name__ == "__main__":
    main()
