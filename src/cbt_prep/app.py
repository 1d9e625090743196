"""Interactive terminal application."""
import asyncio
import base64
import logging
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from cbt_prep.ai import AI_PROVIDERS, AIService, available_providers
from cbt_prep.backend_client import BackendClient
from cbt_prep.calculator import Calculator
from cbt_prep.config import Settings, configure_logging
from cbt_prep.dashboard import (
    get_score_color, get_score_label, get_study_stats, get_subject_averages, recent_average,
)
from cbt_prep.dictionary import lookup_word, summarize_entries
from cbt_prep.errors import CBTError
from cbt_prep.flashcards import (
    create_flashcard, delete_flashcard, generate_flashcards, get_due_cards,
    list_flashcards, review_flashcard, session_summary,
)
from cbt_prep.history import build_session_record, clear_sessions, delete_session, list_sessions, save_session
from cbt_prep.question_bank import QuestionBankClient, normalize_question
from cbt_prep.seed import SUBJECTS, subject_name
from cbt_prep.sourcing import QuestionSource
from cbt_prep.store import LocalStore

logger = logging.getLogger(__name__)

console = Console()

EXAM_SUBJECTS = 4


class SessionExitRequested(Exception):
    """Raised when the user types 'q' inside a quiz or flashcard run."""


@dataclass
class Services:
    settings: Settings
    store: LocalStore
    source: QuestionSource
    ai: AIService
    bank: QuestionBankClient = None
    backend: BackendClient = None


def session_prompt(message: str, choices: list[str], default: str = None) -> str:
    answer = Prompt.ask(message, choices=list(choices) + ["q"], default=default)
    if answer == "q":
        raise SessionExitRequested()
    return answer


def show_welcome():
    console.print(Panel(
        "[bold]JAMB UTME Practice[/bold]\n[dim]Computer-based test preparation[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("practice", "Practice one subject"),
        ("quick", "One random question"),
        ("exam", "Full mock exam"),
        ("flashcards", "Review, create or generate flashcards"),
        ("ask", "Ask the AI tutor"),
        ("novel", "Novel analysis"),
        ("history", "Saved sessions"),
        ("dashboard", "Progress overview"),
        ("calc", "Calculator"),
        ("define", "Dictionary lookup"),
        ("offline", "Download questions for offline use"),
        ("server", "Question server status, sync and generation"),
        ("settings", "AI provider and model"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def choose_subject(default: str = "english") -> str:
    for key, name in SUBJECTS.items():
        console.print(f"  [cyan]{key:<12}[/cyan] {name}")
    return Prompt.ask("Subject", choices=list(SUBJECTS), default=default)


def show_question(i: int, total: int, q) -> None:
    header = f"[bold]Q{i}/{total}.[/bold]"
    if q.topic:
        header += f" [dim]{q.topic}[/dim]"
    console.print(f"{header}\n{q.question}\n")
    if q.image:
        console.print(f"[dim]Image: {q.image}[/dim]")
    for label, text in q.options.items():
        if text:
            console.print(f"  [cyan]{label})[/cyan] {text}")


def run_quiz_session(questions: list, feedback: bool = True) -> list[tuple[str, bool]]:
    """Ask each question; returns (subject, correct) pairs for the questions answered."""
    if not questions:
        console.print("[yellow]No questions available![/yellow]")
        return []
    answers = []
    console.print(f"\n[bold]Quiz[/bold] - {len(questions)} questions [dim](q to stop)[/dim]\n")
    try:
        for i, q in enumerate(questions, 1):
            show_question(i, len(questions), q)
            choices = [label for label, text in q.options.items() if text]
            answer = session_prompt("\nYour answer", choices)
            is_correct = answer == q.answer
            answers.append((q.subject, is_correct))
            if feedback:
                if is_correct:
                    console.print("[green]Correct![/green]")
                else:
                    console.print(f"[red]Incorrect.[/red] Answer: [green]{q.answer}[/green]")
                if q.explanation:
                    console.print(f"[dim]{q.explanation}[/dim]")
            console.print()
    except SessionExitRequested:
        console.print("[dim]Session ended early.[/dim]")
    if answers:
        correct = sum(1 for _, ok in answers if ok)
        console.print(f"[bold]Score: {correct}/{len(answers)} ({correct / len(answers) * 100:.0f}%)[/bold]\n")
    return answers


async def run_flashcard_session(store, cards: list) -> list[bool]:
    if not cards:
        console.print("[yellow]No flashcards due right now![/yellow]")
        return []
    results = []
    console.print(f"\n[bold]Flashcard Session[/bold] - {len(cards)} cards [dim](q to stop)[/dim]\n")
    try:
        for i, card in enumerate(cards, 1):
            console.print(Panel(card.front, title=f"Card {i}/{len(cards)} - {card.topic}", border_style="cyan"))
            Prompt.ask("[dim]Press Enter to reveal answer[/dim]", default="")
            console.print(Panel(card.back, border_style="green"))
            correct = session_prompt("Did you get it right?", ["y", "n"]) == "y"
            difficulty = "normal"
            if correct:
                difficulty = session_prompt("How did it feel?", ["easy", "normal", "hard"], default="normal")
            await review_flashcard(store, card.id, correct, difficulty)
            results.append(correct)
            console.print()
    except SessionExitRequested:
        console.print("[dim]Session ended early.[/dim]")
    if results:
        summary = session_summary(results)
        console.print(
            f"[bold]{summary['correct']} right, {summary['incorrect']} to revisit "
            f"({summary['accuracy']}%)[/bold]"
        )
    return results


async def record_session(services: Services, mode: str, answers: list, started: float, name: str = None) -> None:
    if not answers:
        return
    record = build_session_record(mode, answers, time.time() - started, name=name)
    await save_session(services.store, record)
    color = get_score_color(record.score)
    console.print(f"[{color}]Saved {mode} session: {record.score}% ({get_score_label(record.score)})[/{color}]")


async def cmd_practice(services: Services):
    console.print("\n[bold]Practice[/bold]")
    subject = choose_subject()
    count = IntPrompt.ask("Number of questions", default=20)
    year = Prompt.ask("Exam year (blank for any)", default="").strip() or None
    with console.status(f"Loading {subject_name(subject)} questions..."):
        questions = await services.source.load_practice_questions(subject, count, year)
    if not questions:
        console.print("[yellow]No questions available. Check your connection or download questions for offline use.[/yellow]")
        return
    started = time.time()
    answers = run_quiz_session(questions)
    await record_session(services, "practice", answers, started, name=subject_name(subject))


async def cmd_quick(services: Services):
    console.print("\n[bold]Quick Question[/bold]")
    subject = choose_subject()
    with console.status(f"Fetching a {subject_name(subject)} question..."):
        question = await services.source.get_question(subject)
    started = time.time()
    answers = run_quiz_session([question])
    await record_session(services, "practice", answers, started, name=subject_name(subject))


async def cmd_exam(services: Services):
    console.print("\n[bold]Mock Exam[/bold] [dim]English is compulsory, plus three other subjects[/dim]")
    others = [k for k in SUBJECTS if k != "english"]
    console.print("  " + ", ".join(others))
    picked = Prompt.ask("Other subjects (comma separated)", default="mathematics,physics,chemistry")
    subjects = ["english"]
    for s in (p.strip().lower() for p in picked.split(",")):
        if s in SUBJECTS and s not in subjects:
            subjects.append(s)
    subjects = subjects[:EXAM_SUBJECTS]

    def progress(info):
        console.print(f"[dim]Loaded {info['subject']} ({info['question_count']} questions) "
                      f"[{info['loaded']}/{info['total']}][/dim]")

    papers = await services.source.load_exam_questions(subjects, on_progress=progress)
    started = time.time()
    answers = []
    for subject in subjects:
        questions = papers.get(subject) or []
        console.print(Panel(f"{subject_name(subject)} - {len(questions)} questions", border_style="blue"))
        answers.extend(run_quiz_session(questions, feedback=False))
        if subject != subjects[-1] and not Confirm.ask("Continue to the next subject?", default=True):
            break
    await record_session(services, "full", answers, started, name=", ".join(subject_name(s) for s in subjects))


async def cmd_flashcards(services: Services):
    console.print("\n[bold]Flashcards[/bold]")
    action = Prompt.ask("Action", choices=["review", "create", "generate", "list", "delete"], default="review")
    store = services.store
    if action == "review":
        subject = Prompt.ask("Subject (blank for all)", default="").strip() or None
        cards = await get_due_cards(store, subject)
        await run_flashcard_session(store, cards)
    elif action == "create":
        subject = choose_subject()
        topic = Prompt.ask("Topic")
        front = Prompt.ask("Front")
        back = Prompt.ask("Back")
        await create_flashcard(store, subject, topic, front, back)
        console.print("[green]Flashcard saved.[/green]")
    elif action == "generate":
        if not services.ai.configured:
            console.print("[red]No AI provider is configured. Add an API key to your .env file.[/red]")
            return
        subject = choose_subject()
        topic = Prompt.ask("Topic")
        count = IntPrompt.ask("How many", default=5)
        with console.status("Generating flashcards..."):
            cards = await generate_flashcards(store, services.ai, subject, topic, count)
        console.print(f"[green]Created {len(cards)} flashcards.[/green]")
    elif action == "list":
        cards = await list_flashcards(store)
        table = Table(title="Flashcards")
        table.add_column("ID", style="dim")
        table.add_column("Subject", style="cyan")
        table.add_column("Topic")
        table.add_column("Front")
        table.add_column("Mastery", justify="right")
        for c in cards:
            table.add_row(c.id, c.subject, c.topic, c.front, "-" if c.mastery is None else f"{c.mastery}%")
        console.print(table)
    elif action == "delete":
        card_id = Prompt.ask("Card ID")
        await delete_flashcard(store, card_id)
        console.print("[green]Deleted.[/green]")


def image_data_url(path: str) -> str:
    mime_type = mimetypes.guess_type(path)[0] or "image/png"
    data = base64.b64encode(Path(path).read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{data}"


async def show_conversation(ai: AIService) -> None:
    messages = await ai.conversation_history()
    if not messages:
        console.print("[dim]No conversation yet.[/dim]")
        return
    for m in messages:
        speaker = "[bold]You[/bold]" if m["role"] == "user" else "[bold green]Tutor[/bold green]"
        console.print(f"{speaker}: {m['content']}\n")


async def cmd_ask(services: Services):
    if not services.ai.configured:
        console.print("[red]No AI provider is configured. Add an API key to your .env file.[/red]")
        return
    console.print("\n[bold]AI Tutor[/bold] [dim]'back' to return, 'tips', 'topic', 'image <path>', 'history', 'reset'[/dim]")
    subject = Prompt.ask("Subject (blank for general)", default="").strip() or None
    while True:
        text = Prompt.ask("\n[bold]You[/bold]").strip()
        if not text:
            continue
        if text == "back":
            return
        if text == "history":
            await show_conversation(services.ai)
            continue
        try:
            with console.status("Thinking..."):
                if text == "reset":
                    await services.ai.reset_chat()
                    response = "Conversation cleared."
                elif text == "tips":
                    response = await services.ai.study_tips(subject or "english")
                elif text == "topic":
                    topic = Prompt.ask("Topic")
                    response = await services.ai.clarify_topic(topic, subject or "english")
                elif text.startswith("image "):
                    path = text[len("image "):].strip()
                    question = Prompt.ask("Question about the image", default="").strip() or None
                    response = await services.ai.analyze_image(image_data_url(path), question, subject)
                else:
                    response = await services.ai.ask(text, subject)
        except (CBTError, OSError) as e:
            console.print(f"[red]{e}[/red]")
            continue
        console.print(Panel(Markdown(response), title="Tutor", border_style="green"))


async def choose_saved_novel(store) -> dict | None:
    """Offer analyses already on this device; None means analyse a new novel."""
    saved = await store.all_novels()
    if not saved:
        return None
    table = Table(title="Saved Analyses")
    table.add_column("#", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Author")
    for i, n in enumerate(saved, 1):
        table.add_row(str(i), str(n.get("title", "")), str(n.get("author", "")))
    console.print(table)
    picked = Prompt.ask("Open a saved analysis (number, blank for a new novel)", default="").strip()
    if picked.isdigit() and 1 <= int(picked) <= len(saved):
        return saved[int(picked) - 1]
    return None


async def cmd_novel(services: Services):
    novel = await choose_saved_novel(services.store)
    if novel is None:
        if not services.ai.configured:
            console.print("[red]No AI provider is configured. Add an API key to your .env file.[/red]")
            return
        title = Prompt.ask("Novel title", default="The Lekki Headmaster")
        author = Prompt.ask("Author", default="Kabir Alabi Garba")
        with console.status("Analysing..."):
            novel = await services.ai.generate_novel_analysis(title, author)
        if not novel:
            console.print("[yellow]Could not generate an analysis. Try again.[/yellow]")
            return
    console.print(Panel(str(novel.get("summary", "")), title=f"{novel['title']} - {novel['author']}", border_style="blue"))
    characters = Table(title="Characters")
    characters.add_column("Name", style="cyan")
    characters.add_column("Role")
    characters.add_column("Description")
    for c in novel.get("characters") or []:
        if isinstance(c, dict):
            characters.add_row(str(c.get("name", "")), str(c.get("role", "")), str(c.get("description", "")))
    console.print(characters)
    for t in novel.get("themes") or []:
        if isinstance(t, dict):
            console.print(f"  [bold]{t.get('theme', '')}[/bold]: {t.get('explanation', '')}")
    raw = [q for q in novel.get("questions") or [] if isinstance(q, dict)]
    questions = [q for q in (normalize_question(r, i, "literature") for i, r in enumerate(raw)) if q.is_valid()]
    if questions and Confirm.ask(f"Take the {len(questions)} practice questions?", default=True):
        started = time.time()
        answers = run_quiz_session(questions)
        await record_session(services, "study", answers, started, name=novel["title"])


async def cmd_history(services: Services):
    sessions = await list_sessions(services.store)
    if not sessions:
        console.print("[yellow]No saved sessions yet.[/yellow]")
        return
    table = Table(title="Saved Sessions")
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Mode", style="cyan")
    table.add_column("Subjects")
    table.add_column("Score", justify="right")
    table.add_column("Time", justify="right")
    for s in sessions:
        color = get_score_color(s.score)
        table.add_row(
            s.id,
            time.strftime("%Y-%m-%d %H:%M", time.localtime(s.timestamp)),
            s.mode,
            s.name or ", ".join(s.subjects),
            f"[{color}]{s.score}%[/{color}]",
            f"{s.duration // 60}m {s.duration % 60}s",
        )
    console.print(table)
    action = Prompt.ask("Action", choices=["back", "delete", "clear"], default="back")
    if action == "delete":
        await delete_session(services.store, Prompt.ask("Session ID"))
        console.print("[green]Deleted.[/green]")
    elif action == "clear" and Confirm.ask("Delete all saved sessions?", default=False):
        await clear_sessions(services.store)
        console.print("[green]All sessions cleared.[/green]")


async def cmd_dashboard(services: Services):
    sessions = await list_sessions(services.store)
    stats = get_study_stats(sessions)
    average = recent_average(sessions)
    color = get_score_color(average)
    bar_filled = int(average / 5)
    bar = f"[{color}]{'█' * bar_filled}{'░' * (20 - bar_filled)}[/{color}]"
    console.print(Panel("[bold]Your progress[/bold]", title="Dashboard", border_style="blue"))
    console.print(f"\n  Recent exam average: [bold]{average}%[/bold] {bar} [{color}]{get_score_label(average)}[/{color}]\n")

    table = Table(title="Subject Breakdown")
    table.add_column("Subject", style="cyan")
    table.add_column("Answered", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    averages = get_subject_averages(sessions)
    for row in averages:
        sc_color = get_score_color(row["score"])
        table.add_row(subject_name(row["subject"]), str(row["total"]), f"{row['score']}%", f"[{sc_color}]{row['label']}[/{sc_color}]")
    console.print(table)

    cache = await services.store.cache_stats()
    console.print(f"\n  Sessions: [bold]{stats['total_sessions']}[/bold]  |  "
                  f"Best: [bold]{stats['best_score']}%[/bold]  |  "
                  f"Answered: [bold]{stats['questions_answered']}[/bold]  |  "
                  f"Offline questions: [bold]{cache['questions']}[/bold]  |  "
                  f"Flashcards: [bold]{cache['flashcards']}[/bold]")
    if averages and averages[0]["score"] < 70:
        console.print(f"\n  [yellow]Recommendation: Focus on {subject_name(averages[0]['subject'])}[/yellow]")


def cmd_calc():
    calc = Calculator()
    console.print("\n[bold]Calculator[/bold] [dim]keys: 0-9 . + - × ÷ (or * /) = C <, 'q' to close[/dim]")
    aliases = {"*": "×", "x": "×", "/": "÷"}
    while True:
        keys = Prompt.ask(f"[bold]{calc.display}[/bold]").strip()
        if keys == "q":
            return
        try:
            for key in keys.replace(" ", ""):
                calc.press(aliases.get(key, key))
        except ValueError as e:
            console.print(f"[red]{e}[/red]")


async def cmd_define():
    word = Prompt.ask("Word").strip()
    if not word:
        return
    try:
        entries = await lookup_word(word)
    except CBTError as e:
        console.print(f"[red]{e}[/red]")
        return
    phonetic = entries[0].get("phonetic", "") if entries else ""
    console.print(f"\n[bold]{word}[/bold] [dim]{phonetic}[/dim]")
    for row in summarize_entries(entries, limit=5):
        console.print(f"  [cyan]{row['part_of_speech']}[/cyan] {row['definition']}")
        if row["example"]:
            console.print(f"    [dim]e.g. {row['example']}[/dim]")


async def cmd_offline(services: Services):
    counts = await services.source.offline_question_count()
    console.print(f"\n[bold]Offline questions:[/bold] {counts['total']}")
    for subject, n in sorted(counts["by_subject"].items()):
        console.print(f"  [cyan]{subject_name(subject):<30}[/cyan] {n}")
    picked = Prompt.ask("Subjects to download (comma separated, 'all', blank to skip)", default="")
    if not picked.strip():
        return
    subjects = list(SUBJECTS) if picked.strip() == "all" else [
        s.strip().lower() for s in picked.split(",") if s.strip().lower() in SUBJECTS
    ]

    def progress(info):
        console.print(f"[dim]{info['subject']} [{info['done']}/{info['total']}][/dim]")

    result = await services.source.download_for_offline(subjects, on_progress=progress)
    console.print(f"[green]Downloaded: {', '.join(result['success']) or 'none'}[/green]")
    if result["failed"]:
        console.print(f"[red]Failed: {', '.join(result['failed'])}[/red]")


async def cmd_server(services: Services):
    console.print("\n[bold]Question Server[/bold]")
    if services.bank is not None:
        try:
            metrics = await services.bank.subject_metrics()
        except CBTError as e:
            console.print(f"[dim]Question bank metrics unavailable: {e}[/dim]")
        else:
            console.print("[bold]Question bank[/bold]")
            console.print_json(data=metrics)
    backend = services.backend
    if backend is None:
        console.print("[yellow]No companion server configured. Set CBT_BACKEND_URL in your .env file.[/yellow]")
        return
    health = await backend.health()
    stats = await backend.stats()
    console.print(f"Server status: [green]{health.get('status', 'unknown')}[/green]")
    table = Table(title=f"Stored questions ({stats.get('total', 0)})")
    table.add_column("Subject", style="cyan")
    table.add_column("Questions", justify="right")
    for subject, n in sorted((stats.get("subjects") or {}).items()):
        table.add_row(subject_name(subject), str(n))
    console.print(table)

    action = Prompt.ask("Action", choices=["back", "sync", "generate"], default="back")
    if action == "sync":
        subject = Prompt.ask("Subject (blank for all)", default="").strip().lower() or None
        with console.status("Syncing from the question bank..."):
            result = await backend.sync(subject)
        for name, r in (result.get("results") or {}).items():
            console.print(f"  [cyan]{subject_name(name):<30}[/cyan] fetched {r['fetched']}, saved {r['saved']}")
    elif action == "generate":
        subject = choose_subject()
        topic = Prompt.ask("Topic (blank for any)", default="").strip() or None
        count = IntPrompt.ask("How many", default=10)
        with console.status("Generating questions on the server..."):
            generated = await backend.generate(subject, topic, count)
        console.print(f"[green]Server generated {len(generated)} questions.[/green]")


async def cmd_settings(services: Services):
    selection = await services.ai.current_selection()
    configured = available_providers(services.settings)
    console.print(f"\nCurrent: [bold]{AI_PROVIDERS[selection['provider']]['name']}[/bold] / {selection['model']}")
    console.print(f"Configured providers: {', '.join(configured) or 'none'}")
    if not configured:
        return
    provider = Prompt.ask("Provider", choices=configured, default=selection["provider"] if selection["provider"] in configured else configured[0])
    models = [m["id"] for m in AI_PROVIDERS[provider]["models"]]
    model = Prompt.ask("Model", choices=models, default=models[0])
    await services.ai.set_provider(provider, model)
    console.print(f"[green]Using {AI_PROVIDERS[provider]['name']} / {model}[/green]")


async def run(settings: Settings):
    store = LocalStore(settings.store_path)
    bank = QuestionBankClient(settings.aloc_api_url, settings.aloc_access_token, settings.http_timeout)
    backend = BackendClient(settings.backend_url, settings.http_timeout) if settings.backend_url else None
    ai = AIService(settings, store)
    services = Services(settings, store, QuestionSource(store, bank, backend=backend, ai=ai), ai, bank, backend)

    show_welcome()
    try:
        while True:
            show_menu()
            choice = Prompt.ask("\n[bold]>[/bold]", default="practice").strip().lower()
            try:
                if choice == "practice":
                    await cmd_practice(services)
                elif choice == "quick":
                    await cmd_quick(services)
                elif choice == "exam":
                    await cmd_exam(services)
                elif choice == "flashcards":
                    await cmd_flashcards(services)
                elif choice == "ask":
                    await cmd_ask(services)
                elif choice == "novel":
                    await cmd_novel(services)
                elif choice == "history":
                    await cmd_history(services)
                elif choice == "dashboard":
                    await cmd_dashboard(services)
                elif choice == "calc":
                    cmd_calc()
                elif choice == "define":
                    await cmd_define()
                elif choice == "offline":
                    await cmd_offline(services)
                elif choice == "server":
                    await cmd_server(services)
                elif choice == "settings":
                    await cmd_settings(services)
                elif choice in ("quit", "exit", "q"):
                    console.print("[dim]Good luck in your exam![/dim]")
                    break
                else:
                    console.print("[red]Unknown command. Try again.[/red]")
            except KeyboardInterrupt:
                console.print("\n[dim]Use 'quit' to exit.[/dim]")
            except CBTError as e:
                logger.debug("command %s failed", choice, exc_info=True)
                console.print(f"[red]Error: {e}[/red]")
    finally:
        await bank.aclose()
        if backend is not None:
            await backend.aclose()
        await store.close()


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
