"""
Message Templates

Prompt contexts handed to the message generator and the deterministic
fallback messages used when generation fails. Copy is in Italian: the gyms and
their clients talk Italian on WhatsApp.
"""

from typing import Optional, Dict, Any

from brain.models import ClientProfile, PromptContext, ScoreSnapshot

SYSTEM_PROMPT = (
    "Sei un assistente che scrive messaggi WhatsApp per palestre. "
    "Scrivi SOLO il messaggio, niente altro."
)

# action kind -> (what the coach must achieve, rules)
PROMPT_BRIEFS = {
    "comeback": (
        "riavvicinare un cliente che non si allena da qualche giorno. Massimo 3 frasi.",
        [
            "Tono empatico, mai accusatorio",
            "Richiama un obiettivo o un'attività che il cliente ama",
            "Chiudi con una domanda aperta o una proposta concreta",
            "Al massimo 1-2 emoji",
        ],
    ),
    "motivation": (
        "dare una spinta motivazionale a un cliente che si allena sempre meno. Massimo 3 frasi.",
        [
            "Cita gli obiettivi del cliente",
            "Riconosci l'impegno fatto finora",
            "Tono energico ma naturale, al massimo 1-2 emoji",
        ],
    ),
    "support": (
        "sostenere un cliente che sembra frustrato o demotivato. Massimo 3 frasi.",
        [
            "Mostra comprensione",
            "Se ha infortuni o dolori proponi con delicatezza una modifica alla scheda",
            "Proponi un'alternativa concreta (esercizio più leggero, giorno di riposo)",
        ],
    ),
    "progress": (
        "chiedere un feedback sulla scheda a un cliente costante. Massimo 2 frasi.",
        [
            "Complimentati per la costanza",
            "Chiedi se la scheda è troppo facile o troppo difficile",
        ],
    ),
    "streak": (
        "invitare a riprendere un cliente molto costante che ha saltato qualche giorno. Massimo 2 frasi.",
        [
            "Riconosci la costanza precedente",
            "Invita a riprendere senza pressione, tono leggero",
        ],
    ),
}

FALLBACK_MESSAGES = {
    "comeback_message": "{greeting} 😊 È un po' che non ti vediamo! Come stai? Quando ti va passa a trovarci, il tuo percorso ti aspetta! 💪",
    "personalized_motivation": "{greeting} 💪 Ogni allenamento ti avvicina al tuo obiettivo. Non mollare proprio adesso! 🔥",
    "scheda_adjust": "{greeting} 🤝 Come ti trovi con la scheda attuale? Se qualche esercizio ti crea problemi possiamo adattarla insieme.",
    "check_progress": "{greeting} 📊 Stai andando alla grande con la costanza! Come ti senti con la scheda? Troppo facile, troppo difficile o va bene così?",
    "streak_recovery": "{greeting} 🏋️ Eri in una serie fantastica! Pronto a riprendere? Anche una sessione leggera conta!",
}


def client_info(profile: Optional[ClientProfile], snapshot: ScoreSnapshot) -> Dict[str, Any]:
    """Facts about the client that the generator may use."""
    profile = profile or ClientProfile(phone=snapshot.phone)
    return {
        "name": profile.name or "sconosciuto",
        "fitness_goals": profile.fitness_goals or "non specificati",
        "fitness_level": profile.fitness_level or "non specificato",
        "injuries": profile.injuries or "nessuno",
        "preferred_activities": profile.preferred_activities or "non specificate",
        "days_inactive": snapshot.days_since_last_checkin,
        "avg_checkins_per_week": snapshot.avg_checkins_per_week,
        "motivation_level": snapshot.motivation_level,
        "key_facts": profile.key_facts or "nessuno",
    }


def build_prompt_context(
    kind: str,
    snapshot: ScoreSnapshot,
    profile: Optional[ClientProfile] = None,
    tenant_name: str = ""
) -> PromptContext:
    """
    Build the generator input for one outreach kind.

    Args:
        kind: One of PROMPT_BRIEFS keys ('comeback', 'motivation', 'support', 'progress', 'streak')
        snapshot: Fresh score snapshot of the client
        profile: Optional client profile
        tenant_name: Gym name

    Returns:
        PromptContext
    """
    goal, rules = PROMPT_BRIEFS.get(kind, PROMPT_BRIEFS["motivation"])
    info = client_info(profile, snapshot)

    info_lines = "\n".join([
        f"Cliente: {info['name']}",
        f"Obiettivi: {info['fitness_goals']}",
        f"Livello: {info['fitness_level']}",
        f"Infortuni/limitazioni: {info['injuries']}",
        f"Attività preferite: {info['preferred_activities']}",
        f"Giorni senza allenamento: {info['days_inactive']}",
        f"Check-in medi a settimana: {info['avg_checkins_per_week']}",
        f"Motivazione attuale: {info['motivation_level']}",
        f"Fatti importanti: {info['key_facts']}",
    ])
    rules_lines = "\n".join(f"- {rule}" for rule in rules + ["Non scrivere il nome della palestra"])

    prompt = (
        f"Sei il coach virtuale della palestra \"{tenant_name}\". "
        f"Scrivi un messaggio WhatsApp BREVE per {goal}\n\n"
        f"{info_lines}\n\n"
        f"REGOLE:\n{rules_lines}\n\n"
        "Scrivi SOLO il messaggio, niente altro."
    )

    return PromptContext(kind=kind, system_prompt=SYSTEM_PROMPT, prompt=prompt, client_info=info)


def fallback_message(action_type: str, profile: Optional[ClientProfile] = None) -> str:
    """
    Deterministic message used when the generator is unavailable.

    Never empty: unknown action types fall back to the motivation copy.
    """
    name = (profile.name or "").strip() if profile else ""
    greeting = f"Ciao {name}!" if name else "Ciao!"
    template = FALLBACK_MESSAGES.get(action_type, FALLBACK_MESSAGES["personalized_motivation"])
    return template.format(greeting=greeting)


def clean_message(text: str) -> str:
    """Drop one wrapping quote character at each end and surrounding whitespace."""
    text = text.strip()
    if text[:1] in ('"', "'"):
        text = text[1:]
    if text[-1:] in ('"', "'"):
        text = text[:-1]
    return text.strip()
