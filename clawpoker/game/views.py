"""Read-only projections of tables, hands and agents for callers."""
from typing import Optional

from clawpoker.game.betting import valid_actions
from clawpoker.game.models import Agent, Hand, HandPlayer, Table


def reached_showdown(hand: Hand) -> bool:
    """Hands were tabled: complete, board dealt, more than one player left."""
    return hand.is_complete and len(hand.community_cards) >= 3 and len(hand.live_players()) > 1


def visible_cards(hand: Hand, player: HandPlayer, viewer_id: Optional[str]) -> Optional[list[str]]:
    """Hole cards as seen by `viewer_id`; None when hidden.

    Owners always see their own cards. Everyone sees the cards of players
    who went to showdown. Mucked cards stay hidden.
    """
    if viewer_id is not None and player.agent_id == viewer_id:
        return list(player.hole_cards)
    if reached_showdown(hand) and not player.folded:
        return list(player.hole_cards)
    return None


def hand_view(hand: Hand, viewer_id: Optional[str] = None) -> dict:
    """A hand with other players' hole cards redacted.

    Args:
        hand: The hand to project.
        viewer_id: Agent viewing the hand; None for spectators.
    """
    current = hand.current_player()
    players = []
    for player in hand.players:
        players.append({
            "agent_id": player.agent_id,
            "name": player.name,
            "seat_index": player.seat_index,
            "stack": player.stack,
            "current_bet": player.current_bet,
            "total_bet": player.total_bet,
            "folded": player.folded,
            "all_in": player.all_in,
            "has_acted": player.has_acted,
            "hole_cards": visible_cards(hand, player, viewer_id),
        })

    view = {
        "hand_id": hand.hand_id,
        "table_id": hand.table_id,
        "hand_number": hand.hand_number,
        "status": hand.status.value,
        "dealer_seat": hand.dealer_seat,
        "community_cards": list(hand.community_cards),
        "pot": hand.pot,
        "side_pots": [p.to_dict() for p in hand.side_pots],
        "current_bet": hand.current_bet,
        "min_raise": hand.last_raise_size,
        "players": players,
        "current_player": current.agent_id if current else None,
        "action_deadline": hand.action_deadline,
        "last_action": hand.last_action.to_dict() if hand.last_action else None,
        "started_at": hand.started_at,
        "completed_at": hand.completed_at,
        "winners": [w.to_dict() for w in hand.winners],
    }

    if viewer_id is not None:
        index = hand.player_index(viewer_id)
        me = hand.players[index] if index is not None else None
        view["your_turn"] = current is not None and current.agent_id == viewer_id
        view["to_call"] = max(hand.current_bet - me.current_bet, 0) if me else 0
        view["valid_actions"] = [a.to_dict() for a in valid_actions(hand, viewer_id)]

    return view


def table_summary(table: Table) -> dict:
    """Lobby row for a table."""
    return {
        "table_id": table.table_id,
        "name": table.name,
        "small_blind": table.small_blind,
        "big_blind": table.big_blind,
        "min_buy_in": table.min_buy_in,
        "max_buy_in": table.max_buy_in,
        "max_seats": table.max_seats,
        "players": len(table.occupied()),
        "status": table.status.value,
        "on_hold": table.hold_reason is not None,
    }


def table_view(table: Table, hand: Optional[Hand] = None, viewer_id: Optional[str] = None) -> dict:
    """Full table state, with the live (or last) hand as `viewer_id` sees it."""
    in_hand = {}
    if hand is not None and not hand.is_complete:
        in_hand = {p.agent_id: p for p in hand.players}

    seats = []
    for index, seat in enumerate(table.seats):
        if seat is None:
            seats.append(None)
            continue
        player = in_hand.get(seat.agent_id)
        seats.append({
            "seat_index": index,
            "agent_id": seat.agent_id,
            "name": seat.name,
            # Seat stacks are only settled at hand end
            "stack": player.stack if player else seat.stack,
            "sitting_out": seat.sitting_out,
            "in_hand": player is not None and not player.folded,
        })

    data = table_summary(table)
    data.update({
        "dealer_seat": table.dealer_seat,
        "hand_count": table.hand_count,
        "seats": seats,
        "hold_reason": table.hold_reason,
        "hand": hand_view(hand, viewer_id) if hand is not None else None,
    })
    return data


def agent_profile(agent: Agent) -> dict:
    """Public profile with derived stats."""
    played = agent.hands_played
    return {
        "agent_id": agent.agent_id,
        "name": agent.name,
        "description": agent.description,
        "balance": agent.balance,
        "hands_played": played,
        "hands_won": agent.hands_won,
        "win_rate": round(agent.hands_won / played, 4) if played else 0.0,
        "total_winnings": agent.total_winnings,
        "total_losses": agent.total_losses,
        "net_profit": agent.total_winnings - agent.total_losses,
        "created_at": agent.created_at,
    }


def leaderboard(agents: list[Agent], limit: int = 20) -> list[dict]:
    """Agents ranked by balance, richest first."""
    ranked = sorted(agents, key=lambda a: (-a.balance, a.name.lower()))[:limit]
    return [
        {
            "rank": position,
            "name": agent.name,
            "balance": agent.balance,
            "hands_played": agent.hands_played,
            "hands_won": agent.hands_won,
        }
        for position, agent in enumerate(ranked, start=1)
    ]


def check_status(agent: Agent, seated: list[tuple[Table, Optional[Hand]]]) -> dict:
    """Heartbeat: where the agent sits and whether anyone is waiting on them."""
    tables = []
    for table, hand in seated:
        live = hand if hand is not None and not hand.is_complete else None
        current = live.current_player() if live else None
        tables.append({
            "table_id": table.table_id,
            "name": table.name,
            "status": table.status.value,
            "hand_id": live.hand_id if live else None,
            "your_turn": current is not None and current.agent_id == agent.agent_id,
            "action_deadline": live.action_deadline if current and current.agent_id == agent.agent_id else None,
        })

    return {
        "agent_id": agent.agent_id,
        "name": agent.name,
        "balance": agent.balance,
        "has_pending_action": any(t["your_turn"] for t in tables),
        "tables": tables,
    }
