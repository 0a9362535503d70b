"""Observer clients: participant, display and moderator.

All three share one ``RoundObserver`` state machine and differ only in
the view that projects its events.
"""

from .gateway import InProcessGateway, RemoteGateway, RoundGateway
from .observer import RoundObserver
from .ticker import Ticker
from .views import DisplayView, ModeratorView, ParticipantView, RoundView

__all__ = [
    'DisplayView',
    'InProcessGateway',
    'ModeratorView',
    'ParticipantView',
    'RemoteGateway',
    'RoundGateway',
    'RoundObserver',
    'RoundView',
    'Ticker',
]
