import logging
import os
from typing import Any, Optional, Tuple

import click

from . import db
from .backup import export_content, import_content, read_backup, write_backup
from .categories import CategoryService
from .content import ContentCache
from .duplicates import find_duplicate_verbs, find_duplicates
from .exceptions import ContentError
from .models import EntityKind
from .scheduler import SeenTracker

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

KIND_CHOICE = click.Choice([k.value for k in EntityKind] + [k.collection for k in EntityKind])


class Context:
    """Lazily built store, cache and tracker shared by the commands."""

    def __init__(self, url: Optional[str]) -> None:
        self.url = url
        self._store: Optional[db.DocumentStore] = None
        self._cache: Optional[ContentCache] = None

    @property
    def store(self) -> db.DocumentStore:
        if self._store is None:
            self._store = db.DocumentStore(self.url)
        return self._store

    @property
    def cache(self) -> ContentCache:
        if self._cache is None:
            self._cache = ContentCache(self.store)
            self._cache.initialize()
        return self._cache


pass_context = click.make_pass_decorator(Context)


def _describe(entity: Any) -> str:
    if entity.kind is EntityKind.VERB:
        return f"{entity.infinitive} ({entity.english or '?'}) group {entity.group}"
    return f"{entity.english} -> {', '.join(entity.french)}"


def _report(result: Any, action: str) -> None:
    if result.success:
        record = result.record
        click.echo(f"{action}: {record.id}" if record is not None else f"{action}.")
    else:
        raise click.ClickException(result.message)


@click.group()
@click.option("--db", "db_path", envvar="LEARN_FRENCH_DB", default=None, help="Path of the SQLite content store")
@click.option("--debug", is_flag=True, default=DEBUG_MODE, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, db_path: Optional[str], debug: bool) -> None:
    """Manage French learning content."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = Context(db.database_url(db_path) if db_path else None)


@cli.command("init-db")
@pass_context
def init_db(obj: Context) -> None:
    """Create the content store (or upgrade it to the latest schema)."""
    try:
        obj.store.initialize()
    except ContentError as exc:
        raise click.ClickException(str(exc))
    CategoryService(obj.store).initialize()
    click.echo("Database initialized.")


@cli.command("upgrade-db")
@click.option("--revision", default="head", help="Target alembic revision")
@pass_context
def upgrade_db(obj: Context, revision: str) -> None:
    """Run the schema migrations against the content store."""
    db.upgrade_schema(obj.store.url, revision)
    click.echo(f"Database upgraded to {revision}.")


@cli.command("add-word")
@click.argument("english")
@click.argument("french", nargs=-1, required=True)
@click.option("--category", default="general", help="Category id")
@click.option("--hint", default=None, help="Hint shown during practice")
@pass_context
def add_word(obj: Context, english: str, french: Tuple[str, ...], category: str, hint: Optional[str]) -> None:
    """Add a word with one or more accepted French translations."""
    result = obj.cache.add(EntityKind.WORD, {"english": english, "french": list(french), "category": category, "hint": hint})
    _report(result, f"Word '{english}' added")


@cli.command("add-sentence")
@click.argument("english")
@click.argument("french", nargs=-1, required=True)
@click.option("--hint", default=None, help="Hint shown during practice")
@pass_context
def add_sentence(obj: Context, english: str, french: Tuple[str, ...], hint: Optional[str]) -> None:
    """Add a sentence with one or more accepted French translations."""
    result = obj.cache.add(EntityKind.SENTENCE, {"english": english, "french": list(french), "hint": hint})
    _report(result, "Sentence added")


@cli.command("add-number")
@click.argument("english")
@click.argument("french", nargs=-1, required=True)
@pass_context
def add_number(obj: Context, english: str, french: Tuple[str, ...]) -> None:
    """Add a number and its French spelling."""
    result = obj.cache.add(EntityKind.NUMBER, {"english": english, "french": list(french)})
    _report(result, f"Number '{english}' added")


@cli.command("add-verb")
@click.argument("infinitive")
@click.option("--english", default="", help="English meaning")
@click.option("--group", default=None, type=click.Choice(["1", "2", "3", "4"]), help="Conjugation group")
@click.option("--form", "forms", multiple=True, help="Conjugated form as SUBJECT=FORM, repeatable")
@pass_context
def add_verb(obj: Context, infinitive: str, english: str, group: Optional[str], forms: Tuple[str, ...]) -> None:
    """Add a verb; subjects without a --form get an empty placeholder."""
    conjugations: dict = {}
    for form in forms:
        subject, sep, value = form.partition("=")
        if not sep:
            raise click.BadParameter(f"expected SUBJECT=FORM, got {form!r}", param_hint="--form")
        conjugations.setdefault(subject.strip(), []).append(value.strip())
    result = obj.cache.add(
        EntityKind.VERB,
        {"infinitive": infinitive, "english": english, "group": group, "conjugations": conjugations},
    )
    _report(result, f"Verb '{infinitive}' added")


@cli.command("list")
@click.argument("kind", type=KIND_CHOICE)
@click.option("--category", "categories", multiple=True, help="Only words in these categories")
@click.option("--group", "groups", multiple=True, help="Only verbs in these groups")
@click.option("--user-only", is_flag=True, help="Hide predefined content")
@pass_context
def list_content(obj: Context, kind: str, categories: Tuple[str, ...], groups: Tuple[str, ...], user_only: bool) -> None:
    """List the merged content for one kind."""
    entity_kind = EntityKind.parse(kind)
    if entity_kind is EntityKind.WORD:
        records = obj.cache.get_words(categories or None)
    elif entity_kind is EntityKind.VERB:
        records = obj.cache.get_verbs(groups or None)
    else:
        records = obj.cache.get_all(entity_kind)
    if user_only:
        records = [r for r in records if not r.is_predefined]
    if not records:
        click.echo(f"No {entity_kind.collection}.")
        return
    for record in records:
        marker = "*" if record.is_predefined else " "
        click.echo(f"{marker} {record.id}: {_describe(record)}")


@cli.command("delete")
@click.argument("kind", type=KIND_CHOICE)
@click.argument("item_id")
@pass_context
def delete(obj: Context, kind: str, item_id: str) -> None:
    """Delete a user record by id."""
    _report(obj.cache.delete(kind, item_id), f"Deleted {item_id}")


@cli.command("next")
@click.argument("kind", type=KIND_CHOICE)
@click.option("--user", "user_id", default=None, help="User whose seen-state is used")
@click.option("--no-mark", is_flag=True, help="Don't record the item as seen")
@pass_context
def next_item(obj: Context, kind: str, user_id: Optional[str], no_mark: bool) -> None:
    """Show the next item to practice, unseen items first."""
    entity_kind = EntityKind.parse(kind)
    tracker = SeenTracker(obj.store)
    pool = obj.cache.get_all(entity_kind)
    item = tracker.get_next(entity_kind, user_id, pool)
    if item is None:
        click.echo("Nothing to practice.")
        return
    click.echo(f"{item.id}: {_describe(item)}")
    if not no_mark:
        tracker.mark_seen(entity_kind, item.id, user_id)


@cli.command("status")
@pass_context
def status(obj: Context) -> None:
    """Show store and cache status per kind."""
    cache = obj.cache
    info = obj.store.status()
    click.echo(f"Store: {'connected' if info['connected'] else 'unavailable'} (revision {info.get('revision')})")
    for kind, entry in cache.get_debug_cache_status().items():
        line = f"{kind.collection}: {entry.state.value}, {entry.count} items"
        if entry.errors:
            line += f" ({'; '.join(entry.errors)})"
        click.echo(line)


@cli.command("refresh")
@pass_context
def refresh(obj: Context) -> None:
    """Reload every kind from the store."""
    obj.cache.force_refresh()
    click.echo("Content refreshed.")


@cli.command("repair-verbs")
@pass_context
def repair_verbs(obj: Context) -> None:
    """Fix stored verbs with missing or incorrect conjugations."""
    try:
        report = obj.cache.repair_verbs()
    except ContentError as exc:
        raise click.ClickException(str(exc))
    click.echo(
        f"Verbs: {report.total_before} before, {report.total_after} after; "
        f"{report.fixed} fixed, {report.deleted} deleted, {report.already_valid} already valid."
    )


@cli.command("purge-predefined")
@click.option("--kind", "kinds", multiple=True, type=KIND_CHOICE, help="Limit to these kinds")
@click.confirmation_option(prompt="Delete stored copies of predefined content?")
@pass_context
def purge_predefined(obj: Context, kinds: Tuple[str, ...]) -> None:
    """Remove stale predefined records from the user collections."""
    try:
        removed = obj.cache.purge_predefined(kinds or None)
    except ContentError as exc:
        raise click.ClickException(str(exc))
    for kind, count in removed.items():
        click.echo(f"{kind.collection}: {count} removed")


@cli.command("duplicates")
@click.argument("kind", type=KIND_CHOICE)
@pass_context
def duplicates(obj: Context, kind: str) -> None:
    """Report records that share a translation or English text."""
    entity_kind = EntityKind.parse(kind)
    records = obj.cache.get_all(entity_kind)
    groups = find_duplicate_verbs(records) if entity_kind is EntityKind.VERB else find_duplicates(records)
    if not groups:
        click.echo("No duplicates found.")
        return
    for group in groups:
        click.echo(f"[{group.field}] {group.key}: {', '.join(str(i) for i in group.ids)}")


@cli.group("categories")
def categories() -> None:
    """Manage word categories."""


@categories.command("list")
@pass_context
def categories_list(obj: Context) -> None:
    service = CategoryService(obj.store)
    service.initialize()
    for category in service.get_all():
        click.echo(f"{category.id}: {category.name} [{category.color_tag}]")


@categories.command("add")
@click.argument("category_id")
@click.argument("name")
@click.option("--color", default="gray", help="Color tag")
@pass_context
def categories_add(obj: Context, category_id: str, name: str, color: str) -> None:
    service = CategoryService(obj.store)
    service.initialize()
    if not service.add({"id": category_id, "name": name, "colorTag": color}):
        raise click.ClickException(f"Category '{category_id}' could not be added.")
    click.echo(f"Category '{category_id}' added.")


@categories.command("delete")
@click.argument("category_id")
@pass_context
def categories_delete(obj: Context, category_id: str) -> None:
    service = CategoryService(obj.store)
    service.initialize()
    if not service.delete(category_id):
        raise click.ClickException(f"Category '{category_id}' could not be deleted.")
    click.echo(f"Category '{category_id}' deleted.")


@cli.command("export")
@click.argument("path", type=click.Path(dir_okay=False, writable=True))
@click.option("--no-predefined", is_flag=True, help="Leave out predefined content")
@click.option("--kind", "kinds", multiple=True, type=KIND_CHOICE, help="Limit to these kinds")
@pass_context
def export(obj: Context, path: str, no_predefined: bool, kinds: Tuple[str, ...]) -> None:
    """Write a JSON backup of the content."""
    backup = export_content(obj.cache, include_predefined=not no_predefined, kinds=kinds or None)
    write_backup(path, backup)
    click.echo(f"Exported {backup['stats']['totalItems']} items to {path}.")


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--keep-existing", is_flag=True, help="Don't clear collections before importing")
@click.option("--skip-predefined", is_flag=True, help="Ignore predefined records in the backup")
@pass_context
def import_(obj: Context, path: str, keep_existing: bool, skip_predefined: bool) -> None:
    """Restore content from a JSON backup."""
    try:
        backup = read_backup(path)
        stats = import_content(
            obj.store, obj.cache, backup,
            clear_existing=not keep_existing,
            skip_predefined=skip_predefined,
        )
    except ContentError as exc:
        raise click.ClickException(str(exc))
    click.echo(
        f"Imported {stats.total_imported} items "
        f"({stats.skipped_predefined} predefined skipped, {stats.failed} failed)."
    )


def main() -> None:
    cli()
