"""Command-line entry point: chunk a file and analyze it within one cache session."""

import logging

import hydra
from omegaconf import DictConfig, OmegaConf

from promptcache.config import AppConfig, CacheConfig
from promptcache.errors import PromptCacheError
from promptcache.orchestrator import ChunkOrchestrator, LLMChunkAnalyzer, StaticSummaryAnalyzer
from promptcache.reporting import estimate_cost, format_metrics_report, format_result, save_report

logger = logging.getLogger(__name__)


def read_file_content(filepath: str) -> str:
    """Read and return the contents of a UTF-8 text file."""
    try:
        with open(filepath, "r", encoding="utf-8") as handle:
            return handle.read().strip()
    except FileNotFoundError:
        print(f"❌ Error: file not found: '{filepath}'")
        exit(1)
    except OSError as exc:
        print(f"❌ Error while reading file: {exc}")
        exit(1)


def build_orchestrator(cfg: DictConfig) -> ChunkOrchestrator:
    cache_config = CacheConfig.from_omegaconf(cfg.get("cache"))
    if cfg.get("dry_run", True):
        analyzer = StaticSummaryAnalyzer()
    else:
        app_config = AppConfig()
        app_config.configure_model(cfg.get("model"))
        analyzer = LLMChunkAnalyzer(app_config)
    return ChunkOrchestrator(config=cache_config, analyzer=analyzer)


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    print("\n" + "=" * 70)
    print("🧩 PROMPTCACHE – CHUNKED ANALYSIS WITH PROMPT FRAGMENT CACHING")
    print("=" * 70)
    print(OmegaConf.to_yaml(cfg))

    content = read_file_content(cfg.input_file)
    if not content:
        print(f"❌ Error: input file '{cfg.input_file}' is empty.")
        exit(1)

    try:
        orchestrator = build_orchestrator(cfg)
    except (KeyError, TypeError, ValueError) as exc:
        print(f"❌ Invalid configuration: {exc}")
        exit(1)

    session = orchestrator.new_session()
    try:
        result = orchestrator.process(content, cache=session)
    except KeyboardInterrupt:
        print("\n\n⚠️ Processing interrupted by user")
        print(format_metrics_report(session.metrics()))
        exit(130)
    except PromptCacheError as exc:
        logger.exception("Processing failed")
        print(f"\n❌ Processing failed: {exc}")
        print(format_metrics_report(session.metrics()))
        exit(1)

    cost = estimate_cost(result.metrics, orchestrator.config.price_per_million_tokens)
    print(format_result(result))
    print()
    print(format_metrics_report(result.metrics, cost))

    if cfg.get("report_path"):
        save_report(result, cfg.report_path)
        print(f"💾 Report saved to {cfg.report_path}")


if __name__ == "__main__":
    main()
