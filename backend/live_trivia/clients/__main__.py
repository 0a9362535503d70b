"""Run an observer client against a live server.

    python -m live_trivia.clients participant Alice --url http://localhost:5000
    python -m live_trivia.clients display
    python -m live_trivia.clients moderator --password secret
"""

import logging
import threading

import click

from config import Config
from live_trivia.services.rounds.errors import ConnectionFailure
from .gateway import RemoteGateway
from .observer import RoundObserver
from .views import LETTERS, DisplayView, ModeratorView, ParticipantView

# Per-role redraw cadence, overridable from the environment
TICK_SETTINGS = {
    'participant': 'PARTICIPANT_TICK_MS',
    'display': 'DISPLAY_TICK_MS',
    'moderator': 'MODERATOR_TICK_MS',
}


def _run(view, url, password=None):
    gateway = RemoteGateway(url, moderator_password=password)
    tick_ms = getattr(Config, TICK_SETTINGS[view.role])
    observer = RoundObserver(gateway, view, tick_interval=tick_ms / 1000.0)
    try:
        gateway.connect()
    except ConnectionFailure as exc:
        raise click.ClickException(f'Could not connect to {url}: {exc.message}')
    observer.start()
    worker = threading.Thread(target=observer.run, name=f'{view.role}-events', daemon=True)
    worker.start()
    return gateway, observer


@click.group()
@click.option('--verbose', is_flag=True, help='Log every notification.')
def cli(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='[%(asctime)s] %(levelname)s %(name)s: %(message)s',
    )


@cli.command()
@click.argument('name')
@click.option('--url', default='http://localhost:5000', show_default=True)
def participant(name, url):
    """Join as NAME and answer by typing the option letter."""
    view = ParticipantView(name)
    gateway, observer = _run(view, url)
    try:
        while True:
            letter = click.prompt('answer', default='', show_default=False).strip().upper()
            if not letter or letter not in LETTERS:
                continue
            try:
                feedback = view.submit(LETTERS.index(letter))
            except ValueError as exc:
                click.echo(str(exc))
                continue
            click.echo(feedback or 'not accepting answers right now')
    except (KeyboardInterrupt, click.Abort):
        pass
    finally:
        observer.close()
        gateway.close()


@cli.command()
@click.option('--url', default='http://localhost:5000', show_default=True)
def display(url):
    """Follow the round like the shared screen does."""
    gateway, observer = _run(DisplayView(), url)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        observer.close()
        gateway.close()


@cli.command()
@click.option('--url', default='http://localhost:5000', show_default=True)
@click.option('--password', envvar='MODERATOR_PASSWORD', default=None)
def moderator(url, password):
    """Drive the round: start QUESTION QUIZ [TIMER], reveal, leaderboard, stop, clear QUIZ, clear-all."""
    view = ModeratorView()
    gateway, observer = _run(view, url, password)
    actions = {
        'reveal': view.reveal,
        'leaderboard': view.show_leaderboard,
        'stop': view.stop,
        'clear-all': view.clear_all_responses,
    }
    try:
        while True:
            parts = click.prompt('moderator', default='', show_default=False).split()
            if not parts:
                continue
            command, args = parts[0], parts[1:]
            try:
                if command == 'start' and len(args) >= 2:
                    view.start(int(args[0]), int(args[1]), int(args[2]) if len(args) > 2 else 20)
                elif command == 'clear' and args:
                    view.clear_responses(int(args[0]))
                elif command in actions:
                    actions[command]()
                else:
                    click.echo('unknown command')
                    continue
            except ValueError:
                click.echo('ids and timer must be integers')
                continue
            click.echo(f'error: {view.error}' if view.error else 'ok')
    except (KeyboardInterrupt, click.Abort):
        pass
    finally:
        observer.close()
        gateway.close()


if __name__ == '__main__':
    cli()
