"""
Conversation Analyzer

Real-time keyword analysis of inbound client messages. Detects frustration,
pain, barriers, motivation, progress and celebration signals (Italian
keyword dictionaries, no model calls), stores them and recomputes the
client's motivation_level from the latest signals.

The analyzer is the second writer of motivation_level next to the scoring
cycle; whichever writes last wins.
"""

import logging
from typing import List, Dict, Any, Optional, Tuple

from brain.config_loader import load_config
from brain.interfaces import SignalStore, ScoreStore
from brain.models import ConversationSignal
from brain.scoring import round_half_up
from utils import activity_logger
from utils.time_utils import get_current_time

logger = logging.getLogger(__name__)

# signal type -> keywords (lower case, matched as substrings) and motivation impact
SIGNALS = {
    "frustration": {
        "keywords": [
            "non riesco", "non ce la faccio", "troppo difficile", "impossibile",
            "non sono capace", "mi arrendo", "basta", "sono negato", "non miglioro",
            "faccio schifo", "è inutile", "non funziona", "deluso", "frustrato",
            "demoralizz", "scoraggi", "non vedo risultati", "perdo tempo",
            "non serve a niente", "mollare", "lasciare perdere",
        ],
        "motivation_impact": -0.3,
    },
    "pain": {
        "keywords": [
            "fa male", "mi fa male", "dolore", "male alla", "male al",
            "infortunio", "infortunato", "storta", "strappo", "contrattura",
            "tendinite", "mal di schiena", "mal di ginocchio", "brucia",
            "blocco", "bloccato", "non riesco a muovere", "fastidio",
            "gonfi", "infiammaz",
        ],
        "motivation_impact": -0.2,
    },
    "barrier": {
        "keywords": [
            "non ho tempo", "non posso", "oggi no", "salto", "non vengo",
            "lavoro", "troppo stanco", "stanchezza", "impegni", "non ce la faccio oggi",
            "rimando", "domani", "la prossima", "periodo difficile",
            "troppo impegnato", "non riesco a venire", "devo saltare",
            "settimana pesante", "non ho voglia", "pigriz",
        ],
        "motivation_impact": -0.1,
    },
    "motivation": {
        "keywords": [
            "motivato", "carico", "carica", "determinato", "pronto",
            "non vedo l'ora", "gasato", "pumped", "finalmente",
            "ce la faccio", "ci riesco", "sono pronto", "voglio",
            "obiettivo", "traguardo", "sfida", "mi impegno",
            "da domani", "nuovo inizio", "ricominc",
        ],
        "motivation_impact": 0.2,
    },
    "progress": {
        "keywords": [
            "perso", "dimagrito", "ho perso", "kg in meno", "centimetri",
            "riesco a fare", "push-up", "migliorato", "più forte",
            "più resistenza", "personal best", "record", "aumentato",
            "risultati", "sono riuscito", "ce l'ho fatta", "progressi",
            "la bilancia", "peso", "mi sento meglio", "più energia",
            "complimenti", "mi hanno detto",
        ],
        "motivation_impact": 0.3,
    },
    "celebration": {
        "keywords": [
            "evviva", "fantastico", "bellissimo", "incredibile", "wow",
            "top", "grandioso", "perfetto", "sono felice", "contento",
            "soddisfatto", "orgoglioso", "che bello", "grazie mille",
            "sei grande", "funziona", "adoro", "mi piace",
            "eccezionale", "super",
        ],
        "motivation_impact": 0.2,
    },
}


def analyze_message(text: Optional[str], config: Optional[Dict[str, Any]] = None) -> List[ConversationSignal]:
    """
    Find behavioural signals in one message.

    Args:
        text: Raw message text

    Returns:
        One ConversationSignal per category with at least one keyword match
    """
    if not text or not isinstance(text, str):
        return []

    preview_chars = (config or load_config())["analyzer"]["text_preview_chars"]
    lower_text = text.lower().strip()
    signals = []

    for signal_type, definition in SIGNALS.items():
        matched = [kw for kw in definition["keywords"] if kw in lower_text]
        if not matched:
            continue

        # More matching keywords = more confidence
        confidence = min(1.0, 0.5 + len(matched) * 0.15)
        signals.append(ConversationSignal(
            signal_type=signal_type,
            keywords=matched,
            confidence=round_half_up(confidence),
            motivation_impact=definition["motivation_impact"],
            text=text[:preview_chars]
        ))

    return signals


def motivation_from_signals(
    recent_signals: List[Dict[str, Any]],
    config: Optional[Dict[str, Any]] = None
) -> Tuple[str, float]:
    """
    Derive the motivation level from the latest stored signals.

    Args:
        recent_signals: Rows with 'signal_type' and 'confidence', most recent first

    Returns:
        Tuple of (motivation level, weighted score)
    """
    analyzer_config = (config or load_config())["analyzer"]

    score = 0.0
    for row in recent_signals[:analyzer_config["recent_signals_limit"]]:
        definition = SIGNALS.get(row.get("signal_type"))
        if definition:
            score += definition["motivation_impact"] * float(row.get("confidence") or 0)

    level = "medium"
    if score > analyzer_config["high_threshold"]:
        level = "high"
    elif score < analyzer_config["low_threshold"]:
        level = "low"
    return level, score


async def process_and_save(
    tenant_id: str,
    phone: str,
    text: str,
    signal_store: SignalStore,
    score_store: ScoreStore,
    config: Optional[Dict[str, Any]] = None
) -> Tuple[List[ConversationSignal], Optional[str]]:
    """
    Analyze an inbound message, store its signals and refresh motivation_level.

    Storage failures are logged; the detected signals are returned regardless.

    Returns:
        Tuple of (signals found, motivation level written or None)
    """
    config = config or load_config()
    signals = analyze_message(text, config)
    if not signals:
        return [], None

    logger.info(f"{phone}: {len(signals)} signals found -> {', '.join(s.signal_type for s in signals)}")

    try:
        await signal_store.insert_signals(tenant_id, phone, signals)
    except Exception as e:
        logger.error(f"Failed to save conversation signals for {phone}: {e}")

    motivation_level = None
    score = None
    try:
        recent = await signal_store.recent_signals(tenant_id, phone, config["analyzer"]["recent_signals_limit"])
        if recent:
            motivation_level, score = motivation_from_signals(recent, config)
            await score_store.set_motivation(tenant_id, phone, motivation_level)
            logger.info(f"{phone}: motivation_level -> {motivation_level} (score: {score:.2f})")
    except Exception as e:
        logger.error(f"Failed to update motivation_level for {phone}: {e}")
        motivation_level = None

    activity_logger.log_analyzer_activity(
        tenant_id=tenant_id,
        phone=phone,
        timestamp=get_current_time(),
        signal_types=[s.signal_type for s in signals],
        motivation_level=motivation_level,
        motivation_score=round(score, 2) if score is not None else None
    )

    return signals, motivation_level
