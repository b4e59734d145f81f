#!/usr/bin/env python3
"""
Program Forge
Command-line entry point for generating and validating training programs.
"""

import argparse
import json
import sys

from loguru import logger

from program_forge.config import get_api_key, load_config
from program_forge.errors import ProfileValidationError, RecordNotFoundError
from program_forge.exercise_classifier import get_classifier
from program_forge.generation_orchestrator import GenerationOrchestrator
from program_forge.generation_store import GenerationStore
from program_forge.guardian_validator import validate_program
from program_forge.logging_setup import setup_logger_from_config
from program_forge.model_client import ProgramModelClient
from program_forge.program_normalizer import normalize_program


def run_inline(func, *args):
    return func(*args)


def _read_json(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _print_json(value):
    print(json.dumps(value, indent=2, sort_keys=True))


def build_orchestrator(config, with_model=True, dispatcher=None):
    """Wire the store, model client and classifier from configuration."""
    store = GenerationStore(config["storage"]["db_path"])
    store.init_schema()

    model_client = None
    if with_model:
        api_key_env = config["claude"]["api_key_env"]
        api_key = get_api_key(config)
        if not api_key:
            print(f"\n❌ Error: {api_key_env} not found in environment variables!")
            print("Add your Anthropic API key to .env and try again.")
            sys.exit(1)
        model_client = ProgramModelClient(api_key, config)

    return GenerationOrchestrator(
        store,
        model_client,
        config=config,
        dispatcher=dispatcher,
        classifier=get_classifier(config.get("exercise_keywords_file")),
    )


def cmd_generate(args, config):
    profile = _read_json(args.profile)
    dispatcher = run_inline if args.wait else (lambda func, *func_args: None)
    orchestrator = build_orchestrator(config, with_model=args.wait, dispatcher=dispatcher)
    try:
        created = orchestrator.create_program(args.user_id, profile)
    except ProfileValidationError as exc:
        print("Onboarding profile is invalid:")
        for error in exc.errors:
            print(f"  - {error['field']}: {error['message']}")
        return 2

    if args.wait:
        _print_json(orchestrator.get_program(created["programId"]))
    else:
        _print_json(created)
        print(f"Run `python main.py run {created['programId']}` to generate it.")
    return 0


def cmd_run(args, config):
    orchestrator = build_orchestrator(config)
    orchestrator.run_generation(args.program_id)
    try:
        _print_json(orchestrator.get_program(args.program_id))
    except RecordNotFoundError as exc:
        print(exc.message)
        return 1
    return 0


def cmd_status(args, config):
    orchestrator = build_orchestrator(config, with_model=False)
    try:
        _print_json(orchestrator.get_program(args.program_id))
    except RecordNotFoundError as exc:
        print(exc.message)
        return 1
    return 0


def cmd_validate(args, config):
    profile = _read_json(args.profile) if args.profile else None
    program = normalize_program(
        _read_json(args.program_json),
        classifier=get_classifier(config.get("exercise_keywords_file")),
    )
    result = validate_program(program, profile)
    _print_json(result.to_dict())
    print(result.summary)
    return 0 if result.is_valid else 1


def cmd_sweep_stale(args, config):
    orchestrator = build_orchestrator(config, with_model=False)
    swept = orchestrator.sweep_abandoned(args.older_than)
    print(f"Marked {len(swept)} abandoned generation(s) as failed.")
    for program_id in swept:
        print(f"  - {program_id}")
    return 0


def cmd_serve(args, config):
    import uvicorn

    from program_forge.api import create_app

    orchestrator = build_orchestrator(config)
    uvicorn.run(create_app(orchestrator), host=args.host, port=args.port)
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate and validate periodized training programs.")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Create a generation request.")
    generate.add_argument("--user-id", required=True, help="Owning user id.")
    generate.add_argument("--profile", required=True, help="Onboarding profile JSON file.")
    generate.add_argument(
        "--wait",
        action="store_true",
        help="Run the generation in this process and print the finished record.",
    )
    generate.set_defaults(handler=cmd_generate)

    run = subparsers.add_parser("run", help="Run generation for a pending record.")
    run.add_argument("program_id")
    run.set_defaults(handler=cmd_run)

    status = subparsers.add_parser("status", help="Show a generation record.")
    status.add_argument("program_id")
    status.set_defaults(handler=cmd_status)

    validate = subparsers.add_parser("validate", help="Normalize and validate a program JSON file.")
    validate.add_argument("program_json")
    validate.add_argument("--profile", default=None, help="Optional onboarding profile JSON file.")
    validate.set_defaults(handler=cmd_validate)

    sweep = subparsers.add_parser("sweep-stale", help="Fail processing records that stopped responding.")
    sweep.add_argument(
        "--older-than",
        type=int,
        default=None,
        help="Age in seconds (defaults to generation.stale_after_seconds).",
    )
    sweep.set_defaults(handler=cmd_sweep_stale)

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(handler=cmd_serve)

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config = load_config(args.config)
    setup_logger_from_config(config)
    logger.debug(f"Running command {args.command}")
    return args.handler(args, config)


if __name__ == "__main__":
    sys.exit(main())
