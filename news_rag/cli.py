"""
Command-Line Interface for the News RAG Chat Backend

Provides commands for:
- Refreshing the article index from the news feeds
- Asking one-off questions
- Interactive chat sessions
- Listing recent sessions
- Index statistics
"""

import sys
import argparse
import logging

from .config import ConfigValidationError, get_config
from .exceptions import NewsRAGError
from .main_pipeline import RAGPipeline, build_pipeline
from .query.conversation_manager import ConversationManager
from .query.handler import ChatHandler


def setup_logging(verbose: bool = False, level_name: str = 'INFO'):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def _ready_pipeline(show_progress: bool = True) -> RAGPipeline:
    """Build a pipeline, reusing the saved index or ingesting when there is none."""
    pipeline = build_pipeline(show_progress=show_progress)
    if not pipeline.restore():
        print("No saved index found, fetching articles first...")
        pipeline.initialize()
    return pipeline


def _session_store() -> ConversationManager:
    config = get_config()
    return ConversationManager(
        enable_persistence=config.enable_session_persistence,
        storage_dir=config.sessions_dir
    )


def _print_articles(articles):
    print("Sources:")
    for i, article in enumerate(articles, 1):
        print(f"  [{i}] {article['title']} ({article['source']}, score {article['score']:.3f})")
        if article.get('url'):
            print(f"      {article['url']}")
    print()


def cmd_refresh(args):
    """Handle the refresh command."""
    pipeline = build_pipeline(show_progress=not args.no_progress)

    print("Refreshing news articles...")
    count = pipeline.refresh()

    print(f"✓ News articles refreshed successfully ({count} articles indexed)")


def cmd_ask(args):
    """Handle the ask command."""
    pipeline = _ready_pipeline()

    print(f"Question: {args.question}")
    print()

    answer = pipeline.answer_query(args.question).to_dict()

    print("Answer:")
    print(answer['response'])
    print()

    if not args.no_sources and answer['articles']:
        _print_articles(answer['articles'])


def cmd_chat(args):
    """Handle the chat command (interactive session)."""
    handler = ChatHandler(
        pipeline=_ready_pipeline(),
        session_store=_session_store(),
        cache_ttl=get_config().cache_ttl
    )

    session_id = args.session
    if session_id and handler.session_store.has_session(session_id):
        for message in handler.get_session_history(session_id):
            print(f"{message['role'].capitalize()}: {message['content']}")
    else:
        session_id = handler.create_session()

    print(f"Session ID: {session_id}")
    print("Type a question, '/clear' to clear the session, or '/quit' to exit.\n")

    while True:
        try:
            message = input("You: ").strip()
        except EOFError:
            print()
            break

        if not message:
            continue
        if message in ('/quit', '/exit'):
            break
        if message == '/clear':
            handler.clear_session(session_id)
            print("Session cleared.\n")
            continue

        try:
            result = handler.process_message(session_id, message)
        except NewsRAGError as e:
            print(f"✗ Error processing message: {e}\n")
            continue

        print(f"\nAssistant: {result['response']}\n")
        if not args.no_sources and result['articles']:
            _print_articles(result['articles'])


def cmd_sessions(args):
    """Handle the sessions command."""
    sessions = _session_store().list_recent(args.limit)

    if not sessions:
        print("No sessions found.")
        return

    print(f"Found {len(sessions)} session(s):\n")
    for session in sessions:
        print(f"Session: {session['session_id']}")
        print(f"  Created: {session['created_at']}")
        print(f"  Messages: {len(session['messages'])}")
        print()


def cmd_stats(args):
    """Handle the stats command."""
    pipeline = build_pipeline()
    pipeline.restore()

    stats = pipeline.get_stats()

    print("="*60)
    print("System Statistics")
    print("="*60)
    print(f"State: {stats['state']}")
    print(f"Collection: {stats['collection_name']} -> {stats['published_collection'] or 'N/A'}")
    print(f"Total Articles: {stats['total_articles']}")
    print(f"Embedder: {stats['embedder']}")
    print("="*60)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog='news-rag',
        description='News RAG Chat Backend - retrieval-augmented answers over live news feeds',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch and index the latest articles
  news-rag refresh

  # Ask a question
  news-rag ask "What is happening in the Middle East?"

  # Start an interactive chat session
  news-rag chat

  # List recent sessions
  news-rag sessions --limit 5
        """
    )

    # Global arguments
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Refresh command
    refresh_parser = subparsers.add_parser(
        'refresh',
        help='Fetch news articles and rebuild the index'
    )
    refresh_parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable the ingestion progress bar'
    )
    refresh_parser.set_defaults(func=cmd_refresh)

    # Ask command
    ask_parser = subparsers.add_parser(
        'ask',
        help='Ask a question and get an AI-generated answer'
    )
    ask_parser.add_argument(
        'question',
        help='Question to ask'
    )
    ask_parser.add_argument(
        '--no-sources',
        action='store_true',
        help='Do not print the retrieved articles'
    )
    ask_parser.set_defaults(func=cmd_ask)

    # Chat command
    chat_parser = subparsers.add_parser(
        'chat',
        help='Start an interactive chat session'
    )
    chat_parser.add_argument(
        '--session',
        help='Resume an existing session ID'
    )
    chat_parser.add_argument(
        '--no-sources',
        action='store_true',
        help='Do not print the retrieved articles'
    )
    chat_parser.set_defaults(func=cmd_chat)

    # Sessions command
    sessions_parser = subparsers.add_parser(
        'sessions',
        help='List recent chat sessions'
    )
    sessions_parser.add_argument(
        '--limit',
        type=int,
        default=10,
        help='Number of sessions to list (default: 10)'
    )
    sessions_parser.set_defaults(func=cmd_sessions)

    # Stats command
    stats_parser = subparsers.add_parser(
        'stats',
        help='Display index statistics'
    )
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = get_config()
    except ConfigValidationError as e:
        print(f"✗ Invalid configuration: {e}")
        sys.exit(2)

    # Setup logging
    setup_logging(args.verbose, config.log_level)

    # Execute command
    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\n✗ Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
