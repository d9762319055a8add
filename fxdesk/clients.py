# fxdesk/clients.py
from typing import Tuple

from .models import Client, Side
from .utils import random_between, random_choice, random_int

CLIENTS: Tuple[Client, ...] = (
    Client(
        id='macrohard',
        name='MacroHard Corp',
        competitiveness=0.7,
        patience_range=(5, 10),
        size_range=(5, 25),
        direction=None,
        frequency_range=(30, 120),
        banks_asked_range=(5, 15),
    ),
    Client(
        id='bills-bakery',
        name="Bill's Bakery",
        competitiveness=0.9,
        patience_range=(5, 10),
        size_range=(1, 5),
        direction=Side.BUY,
        frequency_range=(60, 300),
        banks_asked_range=(3, 5),
    ),
    Client(
        id='abc-capital',
        name='ABC Capital',
        competitiveness=0.4,
        patience_range=(5, 10),
        size_range=(10, 50),
        direction=None,
        frequency_range=(20, 60),
        banks_asked_range=(10, 20),
    ),
)


def draw_request_terms(rng, roster: Tuple[Client, ...] = CLIENTS):
    """
    Picks a client and the terms of its next request.
    Returns (client, side, size, patience_seconds, banks_asked).
    """
    client = random_choice(rng, roster)
    if client.direction is None:
        side = Side.BUY if rng.random() > 0.5 else Side.SELL
    else:
        side = client.direction
    size = random_int(rng, *client.size_range)
    patience = random_between(rng, *client.patience_range)
    banks_asked = random_int(rng, *client.banks_asked_range)
    return client, side, size, patience, banks_asked
