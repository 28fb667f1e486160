"""Command-line interface for ebook-ai."""

import argparse
import asyncio
import logging
import os
import sys
import traceback
from pathlib import Path

from ebook_ai.config import Config
from ebook_ai.core import create_transport_factory
from ebook_ai.exceptions import EbookAIError, ConfigurationError
from ebook_ai.generation.service import AIService
from ebook_ai.generation.token_usage import TokenUsageLog
from ebook_ai.models import AIConfig, BookType
from ebook_ai.utils.prompt_loader import PromptLoader
from ebook_ai.utils.user_feedback import UserFeedback

DEFAULT_CONFIG_FILE = ".ebook-ai.yml"


# Configure logging
def configure_logging(verbose: bool = False, quiet: bool = False):
    """Configure logging based on verbosity level."""
    if quiet:
        logging.basicConfig(level=logging.ERROR, format='%(message)s')
        logging.getLogger('httpx').setLevel(logging.WARNING)
        logging.getLogger('httpcore').setLevel(logging.WARNING)
    elif verbose:
        # Full logging with timestamps in verbose mode
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        logging.getLogger('httpcore').setLevel(logging.INFO)
    else:
        # Only warnings and errors; user feedback goes through the Rich UI
        logging.basicConfig(
            level=logging.WARNING,
            format='%(levelname)s: %(message)s'
        )
        logging.getLogger('httpx').setLevel(logging.ERROR)
        logging.getLogger('httpcore').setLevel(logging.ERROR)


logger = logging.getLogger(__name__)


def setup_argparse() -> argparse.ArgumentParser:
    """Set up command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="ebook-ai",
        description="Summarize book chapters and generate mind maps with an LLM",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_FILE,
        help=f"Configuration file (default: {DEFAULT_CONFIG_FILE})"
    )
    parser.add_argument("--provider", help="Override ai.provider (gemini, openai, 302.ai, ollama)")
    parser.add_argument("--model", help="Override ai.model")
    parser.add_argument("--api-url", help="Override ai.api_url")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Minimal output mode - only show results and errors"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    summarize = subparsers.add_parser("summarize", help="Summarize one chapter")
    summarize.add_argument("file", help="Text file holding the chapter content")
    summarize.add_argument("--title", help="Chapter title (default: file name)")
    summarize.add_argument(
        "--book-type",
        choices=[t.value for t in BookType],
        default=BookType.NON_FICTION.value,
        help="Selects the summary template"
    )
    summarize.add_argument("--language", help="Output language (default: output.language)")
    summarize.add_argument("--prompt", help="Custom prompt template / extra requirements")

    mindmap = subparsers.add_parser("mindmap", help="Generate a mind map for one chapter")
    mindmap.add_argument("file", help="Text file holding the chapter content")
    mindmap.add_argument("--language", help="Output language (default: output.language)")
    mindmap.add_argument("--prompt", help="Custom prompt template / extra requirements")

    subparsers.add_parser("test-connection", help="Check that the configured provider answers")
    subparsers.add_parser("test-proxy", help="Check the configured proxy and the provider behind it")

    init_config = subparsers.add_parser("init-config", help="Write a sample configuration file")
    init_config.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser


def _apply_cli_overrides_to_config(args, config: Config) -> None:
    """Apply command line overrides on top of the loaded configuration."""
    ai = config.config.setdefault('ai', {})
    if getattr(args, 'provider', None):
        ai['provider'] = args.provider
    if getattr(args, 'model', None):
        ai['model'] = args.model
    if getattr(args, 'api_url', None):
        ai['api_url'] = args.api_url


def load_and_validate_config(args, feedback: UserFeedback) -> Config:
    """Load the configuration and make sure the AI settings are usable."""
    with feedback.status_spinner("Loading configuration"):
        config = Config(args.config)
        _apply_cli_overrides_to_config(args, config)
        ai_config = config.get_ai_config()

    if not ai_config.api_key and ai_config.provider.value != "ollama":
        feedback.warning(
            f"No API key configured for {ai_config.provider.value}",
            "Set ai.api_key in the configuration file or the EBOOK_AI_API_KEY environment variable"
        )

    config_info = {
        "Config File": args.config if os.path.exists(args.config) else f"{args.config} (not found, using defaults)",
        "Provider": ai_config.provider.value,
        "Model": ai_config.model or "provider default",
        "Proxy": ai_config.proxy_url if ai_config.use_proxy else "disabled",
    }
    if feedback.verbose:
        feedback.summary_panel("Configuration Loaded", config_info, "blue")
    return config


def build_service(config: Config, usage_log: TokenUsageLog) -> AIService:
    """Create the generation service wired to the loaded configuration."""
    return AIService(
        config=config.get_ai_config,
        prompt_config=config.get_prompt_config,
        options=config.get_generation_options(on_token_usage=usage_log),
        transport_factory=create_transport_factory(config),
        prompt_loader=PromptLoader(version=config.get('prompts.version', 'v1')),
    )


def handle_init_config_mode(args, feedback: UserFeedback):
    """Write a sample configuration file."""
    feedback.section_header("Configuration Initialization")

    config_file = args.config
    if os.path.exists(config_file) and not args.force:
        feedback.warning(
            f"Configuration file {config_file} already exists!",
            "Use --force to overwrite it"
        )
        return

    try:
        Config(None).create_sample_config(config_file)
    except OSError as e:
        raise ConfigurationError(
            f"Failed to create configuration file: {e}",
            suggestion="Check file permissions and try again."
        )

    feedback.success(f"Sample configuration created at {config_file}")
    feedback.info("Set ai.provider and ai.api_key (or EBOOK_AI_API_KEY) before generating.")


def _read_chapter(path: str) -> str:
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigurationError(f"Chapter file not found: {path}", suggestion="Check the path and try again.")
    return file_path.read_text(encoding='utf-8')


async def run_summarize(args, service: AIService, config: Config, feedback: UserFeedback) -> None:
    content = _read_chapter(args.file)
    title = args.title or Path(args.file).stem
    language = args.language or config.get('output.language', 'en')

    with feedback.status_spinner(f"Summarizing '{title}'"):
        summary = await service.summarize_chapter(title, content, args.book_type, language, args.prompt)
    feedback.result_text(title, summary)


async def run_mindmap(args, service: AIService, config: Config, feedback: UserFeedback) -> None:
    content = _read_chapter(args.file)
    language = args.language or config.get('output.language', 'en')

    with feedback.status_spinner(f"Generating mind map for {Path(args.file).name}"):
        mind_map = await service.generate_chapter_mind_map(content, language, args.prompt)
    feedback.result_json("Mind map", mind_map)


async def run_test_connection(args, service: AIService, config: Config, feedback: UserFeedback) -> bool:
    ai_config: AIConfig = service.config
    with feedback.status_spinner(f"Testing connection to {ai_config.provider.value}"):
        ok = await service.test_connection()
    if ok:
        feedback.success(f"Connected to {ai_config.provider.value}")
    else:
        feedback.error(
            f"Connection test against {ai_config.provider.value} failed",
            "Check the API key, API URL and model, then run again with --verbose"
        )
    return ok


async def run_test_proxy(args, service: AIService, config: Config, feedback: UserFeedback) -> bool:
    with feedback.status_spinner("Testing proxy connection"):
        result = await service.test_proxy_connection()
    if result.success:
        feedback.success(result.message)
    else:
        feedback.error(result.message)
    if result.details:
        feedback.summary_panel("Proxy", result.details, "green" if result.success else "red")
    return result.success


COMMANDS = {
    "summarize": run_summarize,
    "mindmap": run_mindmap,
    "test-connection": run_test_connection,
    "test-proxy": run_test_proxy,
}


async def execute_command(args, config: Config, feedback: UserFeedback, usage_log: TokenUsageLog) -> bool:
    """Run one generation command; returns False when a check command failed."""
    async with build_service(config, usage_log) as service:
        outcome = await COMMANDS[args.command](args, service, config, feedback)
    return outcome is not False


def show_usage_summary(usage_log: TokenUsageLog, feedback: UserFeedback) -> None:
    summary = usage_log.get_usage_summary()
    if summary['calls']:
        feedback.summary_panel("Token Usage", {
            "Calls": summary['calls'],
            "Total Tokens": summary['total_tokens'],
            "Average per Call": f"{summary['average_tokens_per_call']:.0f}",
        }, "magenta")


def main(argv=None):
    """Main execution function."""
    feedback = None

    try:
        parser = setup_argparse()
        args = parser.parse_args(argv)

        feedback = UserFeedback(verbose=args.verbose, quiet=args.quiet)
        configure_logging(verbose=args.verbose, quiet=args.quiet)

        # init-config doesn't need a usable configuration
        if args.command == 'init-config':
            handle_init_config_mode(args, feedback)
            return

        config = load_and_validate_config(args, feedback)
        usage_log = TokenUsageLog(model_name=config.get('ai.model') or config.get('ai.provider', ''))

        succeeded = asyncio.run(execute_command(args, config, feedback, usage_log))
        show_usage_summary(usage_log, feedback)
        if not succeeded:
            sys.exit(1)

    except KeyboardInterrupt:
        if feedback:
            feedback.warning("Operation cancelled by user")
        else:
            print("\nOperation cancelled by user")
        sys.exit(130)  # Standard exit code for Ctrl+C

    except EbookAIError as e:
        if feedback:
            feedback.error(e.message, e.suggestion)
            if feedback.verbose and e.__cause__ is not None:
                logger.error(f"Caused by: {e.__cause__!r}")
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    except Exception as e:
        if feedback:
            feedback.error(f"Unexpected error: {e}",
                           "This appears to be a bug. Please report it with the details below.")
            if feedback.verbose:
                feedback.error("Full traceback:", details=traceback.format_exc())
        else:
            print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
