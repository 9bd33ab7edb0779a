"""System prompt assembly.

The prompt is a list of prioritized sections (lower priority renders first),
each optionally wrapped in an XML-like tag. Every section exists in Italian and
English; the user's language preference picks one.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from planner_bot.core.dates import get_zone, next_weekday
from planner_bot.core.session import UserSession
from planner_bot.log import get_logger
from planner_bot.storage.models import UserStats, utcnow
from planner_bot.storage.stats_repo import StatsRepository

logger = get_logger(__name__)

_WEEKDAYS = {
    "it": ["lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica"],
    "en": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"],
}
_MONTHS = {
    "it": [
        "gennaio", "febbraio", "marzo", "aprile", "maggio", "giugno",
        "luglio", "agosto", "settembre", "ottobre", "novembre", "dicembre",
    ],
    "en": [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
}


@dataclass
class TemporalContext:
    """Point-in-time snapshot of "now" as the user sees it."""

    now: datetime  # aware, in the user's timezone
    timezone: str
    language: str = "it"

    @classmethod
    def create(cls, timezone: str, language: str = "it", now: datetime | None = None) -> TemporalContext:
        local = (now or utcnow()).astimezone(get_zone(timezone))
        return cls(now=local, timezone=timezone, language=language if language in _WEEKDAYS else "it")

    @property
    def day_of_week(self) -> str:
        return _WEEKDAYS[self.language][self.now.weekday()]

    @property
    def date_text(self) -> str:
        month = _MONTHS[self.language][self.now.month - 1]
        if self.language == "en":
            return f"{month} {self.now.day}, {self.now.year}"
        return f"{self.now.day} {month} {self.now.year}"

    @property
    def time_text(self) -> str:
        return self.now.strftime("%H:%M")

    def at(self, days: int = 0, hour: int | None = None, minute: int = 0) -> datetime:
        shifted = self.now + timedelta(days=days)
        if hour is not None:
            shifted = shifted.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return shifted

    def example_dates(self) -> dict[str, str]:
        tz = self.now.tzinfo
        return {
            "today": self.now.isoformat(timespec="seconds"),
            "today_at_15": self.at(hour=15).isoformat(timespec="seconds"),
            "tomorrow": self.at(days=1).isoformat(timespec="seconds"),
            "tomorrow_at_9": self.at(days=1, hour=9).isoformat(timespec="seconds"),
            "next_week": self.at(days=7).isoformat(timespec="seconds"),
            "next_monday": next_weekday(self.now, tz, 0).isoformat(timespec="seconds"),
        }


@dataclass
class PromptContext:
    user_name: str
    temporal: TemporalContext
    stats: UserStats | None = None
    app_name: str = "Plannerinator"

    @property
    def italian(self) -> bool:
        return self.temporal.language != "en"


@dataclass
class PromptSection:
    name: str
    content: str
    priority: int  # lower renders earlier
    tag: str | None = None

    def render(self) -> str:
        if self.tag:
            return f"<{self.tag}>\n{self.content}\n</{self.tag}>"
        return self.content


def build_identity_section(ctx: PromptContext) -> PromptSection:
    if ctx.italian:
        content = f"""Sei l'assistente AI di {ctx.app_name}, un'app di produttività personale.

Il tuo ruolo:
- Aiutare {ctx.user_name} a gestire task, eventi, note e progetti
- Essere proattivo nel suggerire organizzazione e priorità
- Rispondere in modo conciso ma completo
- Usare un tono professionale ma amichevole (usa "tu", non "lei")

Personalità:
- Efficiente: vai dritto al punto
- Empatico: capisci quando l'utente è di fretta
- Affidabile: conferma sempre le azioni completate"""
    else:
        content = f"""You are the AI assistant for {ctx.app_name}, a personal productivity app.

Your role:
- Help {ctx.user_name} manage tasks, events, notes, and projects
- Be proactive in suggesting organization and priorities
- Respond concisely but completely
- Use a professional yet friendly tone

Personality:
- Efficient: get straight to the point
- Empathetic: notice when the user is in a hurry
- Reliable: always confirm completed actions"""
    return PromptSection(name="identity", content=content, priority=0)


def _stats_lines(stats: UserStats, italian: bool) -> list[str]:
    labels = {
        "overdue": ("⚠️ {n} task in ritardo", "⚠️ {n} overdue tasks"),
        "due_today": ("📌 {n} task in scadenza oggi", "📌 {n} tasks due today"),
        "due_tomorrow": ("📋 {n} task in scadenza domani", "📋 {n} tasks due tomorrow"),
        "completed_today": ("✅ {n} task completati oggi", "✅ {n} tasks completed today"),
        "open": ("📝 {n} task aperti totali", "📝 {n} total open tasks"),
        "events_today": ("🗓️ {n} eventi oggi", "🗓️ {n} events today"),
        "events_tomorrow": ("🗓️ {n} eventi domani", "🗓️ {n} events tomorrow"),
        "projects": ("📁 {n} progetti attivi", "📁 {n} active projects"),
    }
    values = {
        "overdue": stats.tasks_overdue,
        "due_today": stats.tasks_due_today,
        "due_tomorrow": stats.tasks_due_tomorrow,
        "completed_today": stats.tasks_completed_today,
        "open": stats.tasks_open,
        "events_today": stats.events_today,
        "events_tomorrow": stats.events_tomorrow,
        "projects": stats.active_projects,
    }
    lines = []
    for key, (it_label, en_label) in labels.items():
        # open tasks are always reported, everything else only when non-zero
        if values[key] == 0 and key != "open":
            continue
        line = (it_label if italian else en_label).format(n=values[key])
        if key == "projects" and stats.recent_project_names:
            line += ": " + ", ".join(stats.recent_project_names[:3])
        lines.append(line)
    return lines


def build_context_section(ctx: PromptContext) -> PromptSection:
    t = ctx.temporal
    if ctx.italian:
        content = (
            f"📅 CONTESTO ATTUALE:\n"
            f"Data: {t.day_of_week}, {t.date_text}\n"
            f"Ora: {t.time_text}\n"
            f"Fuso orario: {t.timezone}"
        )
    else:
        content = (
            f"📅 CURRENT CONTEXT:\n"
            f"Date: {t.day_of_week}, {t.date_text}\n"
            f"Time: {t.time_text}\n"
            f"Timezone: {t.timezone}"
        )

    if ctx.stats is not None:
        heading = (
            f"📊 SITUAZIONE DI {ctx.user_name.upper()}:"
            if ctx.italian
            else f"📊 {ctx.user_name.upper()}'S SITUATION:"
        )
        content += "\n\n" + heading + "\n" + "\n".join(_stats_lines(ctx.stats, ctx.italian))

    return PromptSection(name="context", content=content, priority=5)


def build_rules_section(ctx: PromptContext) -> PromptSection:
    if ctx.italian:
        content = """🎯 REGOLE CRITICHE (SEGUI SEMPRE):

1. CHIAMA IL TOOL PRIMA DI CONFERMARE
   - Non dire "Ho creato/modificato/eliminato" se non hai chiamato il tool
   - Conferma SOLO se il tool ritorna "success: true"
   - Se "success: false" → spiega l'errore, NON confermare l'azione

2. MODIFICA SOLO CIÒ CHE È RICHIESTO
   - Se l'utente vuole solo rinominare, passa SOLO il nuovo titolo
   - NON passare altri campi se non richiesti

3. GESTISCI LE AMBIGUITÀ
   - Se il tool ritorna "matches" → mostra le opzioni numerate e chiedi quale
   - Se "No X found" → dillo chiaramente e suggerisci alternative
   - In caso di dubbio, chiedi chiarimenti PRIMA di agire

4. RISPETTA I DEFAULT
   - query_entities e search_entities non includono elementi nel cestino
   - Limite di default: 10 risultati (massimo 50)

5. CONFERMA AZIONI DISTRUTTIVE
   - Per delete_entity chiedi conferma, a meno che l'utente non dica esplicitamente "elimina" o "cancella\""""
    else:
        content = """🎯 CRITICAL RULES (ALWAYS FOLLOW):

1. CALL THE TOOL BEFORE CONFIRMING
   - Never say "I created/updated/deleted" without calling the tool
   - Confirm ONLY if the tool returns "success: true"
   - If "success: false" → explain the error, DON'T confirm the action

2. MODIFY ONLY WHAT'S REQUESTED
   - If the user only wants to rename, pass ONLY the new title
   - DON'T pass other fields unless requested

3. HANDLE AMBIGUITIES
   - If the tool returns "matches" → show numbered options and ask which one
   - If "No X found" → say it clearly and suggest alternatives
   - When in doubt, ask for clarification BEFORE acting

4. RESPECT DEFAULTS
   - query_entities and search_entities never include trashed items
   - Default limit: 10 results (maximum 50)

5. CONFIRM DESTRUCTIVE ACTIONS
   - For delete_entity ask for confirmation, unless the user explicitly said "delete" or "remove\""""
    return PromptSection(name="rules", content=content, priority=10, tag="critical_rules")


def build_tools_section(ctx: PromptContext) -> PromptSection:
    if ctx.italian:
        content = """QUANDO CHIAMARE OGNI TOOL:

📋 query_entities: lista diretta senza ricerca testuale
Trigger: "mostra", "lista", "ultimi", "recenti", "quanti", "tutti i miei"
Esempio: "mostrami i task urgenti" → query_entities con filters.priority = "urgent"

🔍 search_entities: ricerca per parola chiave
Trigger: "cerca", "trova", "dove è"
Esempio: "trova task con 'riunione'" → search_entities con query = "riunione"

➕ create_task / create_event / create_note / create_project
Trigger: "crea", "aggiungi", "nuovo", "inserisci"
create_task e create_event accettano più elementi in una sola chiamata

✏️ update_task / update_event / update_note / update_project
Trigger: "rinomina", "cambia", "modifica", "sposta", "segna come"
Passa SOLO i campi da modificare in "updates"; accetta UUID o titolo

🗑️ delete_entity
Trigger: "elimina", "cancella", "rimuovi"
Sposta nel cestino (recuperabile)

📊 get_statistics
Trigger: "statistiche", "progressi", "riepilogo"
Metriche: tasks_completed_today/this_week/this_month, overdue_tasks, upcoming_events,
tasks_by_priority, tasks_by_status, project_progress"""
    else:
        content = """WHEN TO CALL EACH TOOL:

📋 query_entities: direct listing without text search
Trigger: "show", "list", "latest", "recent", "how many", "all my"
Example: "show me urgent tasks" → query_entities with filters.priority = "urgent"

🔍 search_entities: keyword search
Trigger: "search", "find", "where is"
Example: "find tasks about 'meeting'" → search_entities with query = "meeting"

➕ create_task / create_event / create_note / create_project
Trigger: "create", "add", "new", "insert"
create_task and create_event accept several items in one call

✏️ update_task / update_event / update_note / update_project
Trigger: "rename", "change", "modify", "move", "mark as"
Pass ONLY the fields to change in "updates"; accepts a UUID or a title

🗑️ delete_entity
Trigger: "delete", "remove", "trash"
Moves the item to the trash (recoverable)

📊 get_statistics
Trigger: "statistics", "progress", "summary"
Metrics: tasks_completed_today/this_week/this_month, overdue_tasks, upcoming_events,
tasks_by_priority, tasks_by_status, project_progress"""
    return PromptSection(name="tools", content=content, priority=20, tag="tool_selection")


def build_dates_section(ctx: PromptContext) -> PromptSection:
    d = ctx.temporal.example_dates()
    tz = ctx.temporal.timezone
    if ctx.italian:
        content = f"""GESTIONE DATE E ORARI:

Fuso orario utente: {tz}
Converti SEMPRE le date relative in ISO 8601 con offset del fuso orario.

CONVERSIONI (calcolate per oggi):
- "oggi" → {d["today"]}
- "oggi alle 15" → {d["today_at_15"]}
- "domani" → {d["tomorrow"]}
- "domani alle 9" → {d["tomorrow_at_9"]}
- "tra una settimana" → {d["next_week"]}
- "lunedì prossimo" → {d["next_monday"]}

REGOLE:
1. Task senza orario → fine giornata (23:59)
2. Evento senza orario → chiedi conferma
3. "Mattina" = 09:00, "Pomeriggio" = 14:00, "Sera" = 19:00
4. Durata evento non specificata → 1 ora
5. Non usare date nel passato per nuovi task o eventi"""
    else:
        content = f"""DATE AND TIME HANDLING:

User timezone: {tz}
ALWAYS convert relative dates to ISO 8601 with the timezone offset.

CONVERSIONS (calculated for today):
- "today" → {d["today"]}
- "today at 3pm" → {d["today_at_15"]}
- "tomorrow" → {d["tomorrow"]}
- "tomorrow at 9am" → {d["tomorrow_at_9"]}
- "in a week" → {d["next_week"]}
- "next Monday" → {d["next_monday"]}

RULES:
1. Task without a time → end of day (23:59)
2. Event without a time → ask for confirmation
3. "Morning" = 09:00, "Afternoon" = 14:00, "Evening" = 19:00
4. Event duration not given → 1 hour
5. Don't use past dates for new tasks or events"""
    return PromptSection(name="dates", content=content, priority=25, tag="date_handling")


def build_examples_section(ctx: PromptContext) -> PromptSection:
    if ctx.italian:
        content = """ESEMPI:

User: "crea un task per chiamare Mario domani alle 10"
→ create_task con tasks: [{ title: "Chiamare Mario", dueDate: "[ISO domani 10:00]" }]

User: "crea 3 task: comprare latte, pagare bollette, chiamare dentista"
→ create_task con tre elementi in tasks

User: "segna 'Comprare latte' come completato"
→ update_task con { taskIdentifier: "Comprare latte", updates: { status: "done" } }

Tool result: { success: false, error: "Multiple tasks found...", data: { matches: [...] } }
→ "Ho trovato più task con quel nome: 1. ... 2. ... Quale intendi?\""""
    else:
        content = """EXAMPLES:

User: "create a task to call Mario tomorrow at 10"
→ create_task with tasks: [{ title: "Call Mario", dueDate: "[ISO tomorrow 10:00]" }]

User: "create 3 tasks: buy milk, pay bills, call dentist"
→ create_task with three items in tasks

User: "mark 'Buy milk' as done"
→ update_task with { taskIdentifier: "Buy milk", updates: { status: "done" } }

Tool result: { success: false, error: "Multiple tasks found...", data: { matches: [...] } }
→ "I found several tasks with that name: 1. ... 2. ... Which one do you mean?\""""
    return PromptSection(name="examples", content=content, priority=30, tag="examples")


def build_conversation_section(ctx: PromptContext) -> PromptSection:
    if ctx.italian:
        content = """CONTESTO CONVERSAZIONALE:
- "quello", "questa" → ultima entità dello stesso tipo menzionata
- Se il riferimento è ambiguo chiedi: "Ti riferisci a [X] o [Y]?"
- Ricorda le entità mostrate o create e usa i loro ID per le operazioni successive
- "e anche..." aggiunge alla richiesta precedente, "invece..." la modifica"""
    else:
        content = """CONVERSATION CONTEXT:
- "that", "this", "it" → last mentioned entity of the same type
- If a reference is ambiguous ask: "Do you mean [X] or [Y]?"
- Remember entities shown or created and use their IDs for follow-up operations
- "and also..." adds to the previous request, "instead..." modifies it"""
    return PromptSection(name="conversation", content=content, priority=35, tag="conversation_context")


def build_formatting_section(ctx: PromptContext) -> PromptSection:
    if ctx.italian:
        content = """FORMATTAZIONE RISPOSTE:
- Inizia con una conferma o risposta diretta di una riga, poi i dettagli
- Markdown: **grassetto** per i titoli, elenchi puntati per 3+ elementi
- Emoji con moderazione: ✅ fatto, ⚠️ urgente, 📝 task, 🗓️ evento, 📁 progetto, ❌ errore
- Massimo 3-4 righe per conferme semplici, 10 per le liste"""
    else:
        content = """RESPONSE FORMATTING:
- Start with a one-line confirmation or direct answer, then details
- Markdown: **bold** for titles, bullet lists for 3+ items
- Emoji sparingly: ✅ done, ⚠️ urgent, 📝 task, 🗓️ event, 📁 project, ❌ error
- At most 3-4 lines for simple confirmations, 10 for lists"""
    return PromptSection(name="formatting", content=content, priority=40, tag="response_formatting")


def build_guidelines_section(ctx: PromptContext) -> PromptSection:
    if ctx.italian:
        content = """LINEE GUIDA:
- Rispondi nella lingua dell'utente (italiano di default)
- Se vedi task in ritardo, menzionalo brevemente
- Se un'operazione fallisce non riprovare automaticamente: spiega l'errore in modo semplice
- Non menzionare ID interni nelle risposte, usa i titoli
- Non puoi accedere a file esterni né inviare email o notifiche"""
    else:
        content = """GUIDELINES:
- Reply in the user's language (Italian by default)
- If you see overdue tasks, mention it briefly
- If an operation fails don't retry automatically: explain the error simply
- Don't mention internal IDs in replies, use titles
- You cannot access external files or send emails or notifications"""
    return PromptSection(name="guidelines", content=content, priority=50, tag="general_guidelines")


SectionBuilder = Callable[[PromptContext], PromptSection]

DEFAULT_SECTIONS: list[SectionBuilder] = [
    build_identity_section,
    build_context_section,
    build_rules_section,
    build_tools_section,
    build_dates_section,
    build_conversation_section,
    build_formatting_section,
    build_guidelines_section,
]


def build_system_prompt(ctx: PromptContext, include_examples: bool = True) -> str:
    builders = list(DEFAULT_SECTIONS)
    if include_examples:
        builders.append(build_examples_section)
    sections = sorted((build(ctx) for build in builders), key=lambda s: s.priority)
    return "\n\n".join(section.render() for section in sections)


@dataclass
class PromptBuilder:
    """Builds the per-turn system prompt from the session and a live stats snapshot."""

    stats_repo: StatsRepository
    app_name: str = "Plannerinator"
    include_examples: bool = True

    async def build(self, session: UserSession, now: datetime | None = None) -> str:
        temporal = TemporalContext.create(session.timezone, session.language, now)
        stats = await self.stats_repo.snapshot(session.user_id, temporal.now, temporal.now.tzinfo)
        ctx = PromptContext(
            user_name=session.name,
            temporal=temporal,
            stats=stats,
            app_name=self.app_name,
        )
        prompt = build_system_prompt(ctx, include_examples=self.include_examples)
        logger.debug("system_prompt_built", length=len(prompt), language=temporal.language)
        return prompt
