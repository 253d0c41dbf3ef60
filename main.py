"""Klassenverteilung: Haupt-CLI.

Verwendung:
  python main.py config init              Standard-Konfiguration anlegen
  python main.py config show              Konfiguration anzeigen
  python main.py generate                 Fake-Daten erzeugen (JSON)
  python main.py template                 Excel-Import-Vorlage erzeugen
  python main.py import <datei.xlsx>      Excel importieren
  python main.py analyze                  Wahlstatistik + Qualitätsbericht
  python main.py validate                 Verteilung prüfen
  python main.py allocate                 Phase 1: Quoten-Verteilung
  python main.py complete                 Phase 2: Paritäts-Auffüllung
  python main.py optimize                 Phase 3: Heterogenitäts-Optimierung
  python main.py run                      Alle Phasen nacheinander
  python main.py run --scenario <name>    Lauf mit einer gespeicherten Variante
  python main.py export                   Excel exportieren
  python main.py scenario save <name>     Variante speichern (--tolerance, --policy, ...)
  python main.py scenario load <name>     Variante als aktive Config setzen
  python main.py scenario list            Varianten mit Parametern auflisten
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich import box

from config.schema import ParityPolicy

console = Console()

# Standard-Pfad für den gespeicherten Datensatz
DEFAULT_DATA_JSON = Path("output/placement_data.json")


def _load_config():
    """Lädt die Konfiguration; ohne Datei gelten die Standardwerte."""
    from config.manager import ConfigManager
    from config.defaults import default_placement_config
    mgr = ConfigManager()
    if mgr.first_run_check():
        console.print(
            "[dim]Keine Konfiguration gefunden – Standardwerte werden verwendet "
            "([bold]python main.py config init[/bold] legt eine Datei an).[/dim]"
        )
        return mgr, default_placement_config()
    try:
        return mgr, mgr.load()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def _load_data_or_abort(json_path: str):
    """Lädt den Datensatz oder bricht mit Fehlermeldung ab."""
    from models.placement_data import PlacementData
    p = Path(json_path)
    if not p.exists():
        console.print(
            f"[red]Keine Datendatei gefunden: {p}[/red]\n"
            "Verwenden Sie [bold]python main.py generate[/bold] oder "
            "[bold]python main.py import <datei.xlsx> --save-json[/bold]."
        )
        sys.exit(1)
    console.print(f"[bold]Lade Datensatz:[/bold] {p}")
    return PlacementData.load_json(p)


def _pipeline_or_abort(data):
    """PlacementPipeline mit Struktur-Check; bricht bei Strukturfehlern ab."""
    from models.placement_data import PlacementStructureError
    from solver.pipeline import PlacementPipeline
    pipeline = PlacementPipeline(data)
    try:
        pipeline.validate()
    except PlacementStructureError as e:
        console.print("[red bold]Strukturfehler – keine Verteilung möglich:[/red bold]")
        for err in e.errors:
            console.print(f"  [red]• {err}[/red]")
        sys.exit(1)
    return pipeline


# ─── Ausgabe-Helfer ───────────────────────────────────────────────────────────

def _print_unplaced(unplaced) -> None:
    if not unplaced:
        console.print("[green]✓[/green] Alle Schüler platziert.")
        return
    table = Table(title=f"Nicht platziert ({len(unplaced)})", box=box.ROUNDED)
    table.add_column("ID", width=8)
    table.add_column("Name", width=26)
    table.add_column("Wahl", width=12)
    table.add_column("Phase", width=12)
    table.add_column("Grund")
    for u in unplaced:
        table.add_row(u.student_id, u.name, u.constraint_key, u.phase, u.reason)
    console.print(table)


def _print_allocation(result) -> None:
    table = Table(title="Phase 1 – Verteilung nach Quoten", box=box.ROUNDED)
    table.add_column("Gruppe", width=14)
    table.add_column("Größe", justify="right", width=6)
    table.add_column("Klassen")
    for g in result.groups:
        placed = ", ".join(f"{cid}: {n}" for cid, n in g.placements.items()) or "–"
        table.add_row(g.key, str(g.size), placed)
    console.print(table)
    for c in result.conflicts:
        console.print(f"  [yellow]• {c.group_key}: {c.reason}[/yellow]")
    console.print(
        f"[bold]{result.placed_count}[/bold] platziert, "
        f"[bold]{result.unplaced_count}[/bold] offen"
    )


def _print_parity(result) -> None:
    table = Table(
        title=f"Phase 2 – Auffüllen (Sollquote {result.global_ratio:.0%} "
              f"{result.reference_gender.value})",
        box=box.ROUNDED,
    )
    table.add_column("Klasse", width=8)
    table.add_column("Frei", justify="right", width=6)
    table.add_column("Soll A/B", justify="right", width=9)
    table.add_column("Ist A/B", justify="right", width=9)
    table.add_column("Pool", width=10)
    for t in result.targets:
        table.add_row(
            t.class_id, str(t.needed),
            f"{t.ideal_a}/{t.ideal_b}", f"{t.placed_a}/{t.placed_b}",
            "[yellow]knapp[/yellow]" if t.pool_limited else "ok",
        )
    console.print(table)
    for w in result.warnings:
        console.print(f"  [yellow]• {w.message}[/yellow]")


def _print_optimization(result) -> None:
    color = "green" if result.improvement > 0 else "white"
    console.print(Panel(
        f"Score: {result.initial_score:.4f} → "
        f"[{color}]{result.final_score:.4f}[/{color}] "
        f"(bester: {result.best_score:.4f})\n"
        f"Iterationen: {result.iterations} | Tausche: {result.swaps_applied} "
        f"(verbessernd: {result.improving_swaps}) | "
        f"ungültig: {result.invalid_proposals}\n"
        f"Freie Schüler: {result.swappable_count} | "
        f"Abbruch: {result.stop_reason} | Zeit: {result.elapsed_seconds:.1f}s",
        title="Phase 3 – Heterogenitäts-Optimierung",
        border_style="cyan",
    ))
    for w in result.parity_warnings:
        console.print(f"  [yellow]• {w.message}[/yellow]")


# ─── CONFIG ───────────────────────────────────────────────────────────────────

@click.group("config")
def cmd_config():
    """Konfiguration anzeigen oder anlegen."""


@cmd_config.command("init")
@click.option("--force", is_flag=True, default=False,
              help="Bestehende Konfiguration überschreiben.")
def config_init(force: bool):
    """Legt die Standard-Konfiguration als YAML an."""
    from config.manager import ConfigManager
    from config.defaults import default_placement_config

    mgr = ConfigManager()
    if not mgr.first_run_check() and not force:
        console.print(
            "[yellow]Eine Konfiguration existiert bereits.[/yellow]\n"
            "Verwenden Sie [bold]--force[/bold] zum Überschreiben."
        )
        return
    mgr.save(default_placement_config())


@cmd_config.command("show")
def config_show():
    """Zeigt die aktuelle Konfiguration an."""
    mgr, config = _load_config()

    console.print(Panel(
        f"[bold]{config.school_name}[/bold]  |  Jahrgang {config.level}",
        title="Konfiguration",
        border_style="cyan",
    ))

    ac, pc, oc = config.allocation, config.parity, config.optimizer
    console.print(
        f"[bold]Verteilung:[/bold] Zuweisungen zurücksetzen: "
        f"{'ja' if ac.reset_assignments else 'nein'} | "
        f"Zielgröße beachten: {'ja' if ac.respect_target_size else 'nein'}"
    )
    console.print(
        f"[bold]Parität:[/bold] Bezug {pc.reference_gender.value} | "
        f"Toleranz {pc.tolerance_percent:.0f} Pp. | "
        f"abwechselnd ziehen: {'ja' if pc.alternate_draw else 'nein'}"
    )
    console.print(
        f"[bold]Optimierung:[/bold] {oc.max_iterations} Iterationen | "
        f"Zeitlimit {oc.time_limit_seconds}s | Parität: {oc.parity_policy.value} | "
        f"Seed: {oc.seed if oc.seed is not None else '–'}"
    )

    table = Table(title="Heterogenitäts-Gewichte", box=box.ROUNDED)
    table.add_column("Merkmal")
    table.add_column("Streuung (intra)", justify="right")
    table.add_column("Gleichheit (inter)", justify="right")
    for name, w in oc.weights.as_dict().items():
        table.add_row(name, f"{w.intra:.1f}", f"{w.inter:.1f}")
    console.print(table)

    if config.extra_synonyms:
        syn = Table(title="Zusatz-Synonyme", box=box.ROUNDED)
        syn.add_column("Schreibweise")
        syn.add_column("Kürzel")
        for raw, tag in sorted(config.extra_synonyms.items()):
            syn.add_row(raw, tag or "[dim](kein Tag)[/dim]")
        console.print(syn)


# ─── GENERATE ─────────────────────────────────────────────────────────────────

@click.command("generate")
@click.option("--seed", default=42, help="Zufalls-Seed für reproduzierbare Daten.")
@click.option("--students", "num_students", default=100, help="Anzahl Schüler.")
@click.option("--classes", "num_classes", default=4, help="Anzahl Zielklassen.")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad für JSON-Export.")
def cmd_generate(seed: int, num_students: int, num_classes: int, json_path: str):
    """Erzeugt einen Test-Jahrgang (Schüler und Zielklassen mit Quoten)."""
    mgr, config = _load_config()
    from data.fake_data import FakeDataGenerator

    console.print("[bold]Testdaten werden generiert...[/bold]")
    gen = FakeDataGenerator(config, seed=seed)
    data = gen.generate(num_students=num_students, num_classes=num_classes)
    gen.print_summary(data)

    console.print(f"\n[dim]{data.summary()}[/dim]")
    data.validate_structure().print_rich()

    out_path = Path(json_path)
    data.save_json(out_path)
    console.print(f"[green]✓[/green] JSON gespeichert: {out_path}")


# ─── TEMPLATE ─────────────────────────────────────────────────────────────────

@click.command("template")
@click.option("--output", "-o", default="output/import_vorlage.xlsx",
              help="Ausgabepfad für die Excel-Vorlage.")
def cmd_template(output: str):
    """Erzeugt eine leere Excel-Import-Vorlage."""
    mgr, config = _load_config()
    from data.excel_import import generate_template

    out_path = Path(output)
    console.print("[bold]Excel-Vorlage wird erzeugt...[/bold]")
    generate_template(config, out_path)
    console.print(f"[green]✓[/green] Vorlage gespeichert: {out_path}")
    console.print(
        "\nBlätter in der Vorlage:\n"
        "  [cyan]Schüler[/cyan]        – Name, Geschlecht, LV2, Option, ASSO/DISSO, Bewertungen\n"
        "  [cyan]Klassen[/cyan]        – Zielklasse, Zielgröße, Quoten (ITA=11, [ITA+CHAV]=4)\n"
        "  [cyan]Kombinationen[/cyan]  – optional: LV2+Option zusammen oder getrennt"
    )


# ─── IMPORT ───────────────────────────────────────────────────────────────────

@click.command("import")
@click.argument("datei", type=click.Path(exists=True, path_type=Path))
@click.option("--save-json", is_flag=True, default=False,
              help="Importierte Daten als JSON speichern.")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad für JSON-Export.")
def cmd_import(datei: Path, save_json: bool, json_path: str):
    """Importiert Schüler und Zielklassen aus einer Excel-Datei."""
    mgr, config = _load_config()
    from data.excel_import import import_from_excel, ExcelImportError

    console.print(f"[bold]Importiere:[/bold] {datei}")
    try:
        data, report = import_from_excel(datei, config)
    except ExcelImportError as e:
        console.print(f"[red bold]Import fehlgeschlagen:[/red bold]\n{e}")
        sys.exit(1)

    console.print("[green]✓[/green] Import erfolgreich!")
    console.print(f"\n{data.summary()}")
    report.print_rich()

    if save_json:
        out_path = Path(json_path)
        data.save_json(out_path)
        console.print(f"[green]✓[/green] Daten gespeichert: {out_path}")


# ─── ANALYZE ──────────────────────────────────────────────────────────────────

@click.command("analyze")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad zur gespeicherten JSON-Datei.")
def cmd_analyze(json_path: str):
    """Zeigt Wahlstatistik und Qualitätsbericht der aktuellen Verteilung."""
    from analysis.constraint_stats import analyze_constraints
    from analysis.placement_report import PlacementAnalyzer
    from solver.normalization import build_synonym_table

    data = _load_data_or_abort(json_path)
    synonyms = build_synonym_table(data.config.extra_synonyms)
    analyze_constraints(data.students, synonyms).print_rich()

    analyzer = PlacementAnalyzer()
    report = analyzer.analyze(data)
    analyzer.print_rich(report, data.config.parity.tolerance_percent)


# ─── VALIDATE ─────────────────────────────────────────────────────────────────

@click.command("validate")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad zur gespeicherten JSON-Datei.")
def cmd_validate(json_path: str):
    """Prüft Struktur und Verteilung des aktuellen Datensatzes."""
    from analysis.placement_validator import PlacementValidator

    data = _load_data_or_abort(json_path)
    console.print(f"\n{data.summary()}\n")
    structure = data.validate_structure()
    structure.print_rich()

    report = PlacementValidator().validate(data)
    report.print_rich()

    sys.exit(0 if structure.is_valid and report.is_valid else 1)


# ─── PHASEN ───────────────────────────────────────────────────────────────────

@click.command("allocate")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad zur gespeicherten JSON-Datei.")
def cmd_allocate(json_path: str):
    """Phase 1: Schüler mit LV2/Option nach Quoten verteilen."""
    data = _load_data_or_abort(json_path)
    result = _pipeline_or_abort(data).allocate()
    _print_allocation(result)
    _print_unplaced(result.unplaced)
    data.save_json(Path(json_path))
    console.print(f"[green]✓[/green] Gespeichert: {json_path}")


@click.command("complete")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad zur gespeicherten JSON-Datei.")
def cmd_complete(json_path: str):
    """Phase 2: Restliche Schüler mit Geschlechter-Parität auffüllen."""
    data = _load_data_or_abort(json_path)
    result = _pipeline_or_abort(data).complete()
    _print_parity(result)
    _print_unplaced(result.unplaced)
    data.save_json(Path(json_path))
    console.print(f"[green]✓[/green] Gespeichert: {json_path}")


@click.command("optimize")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad zur gespeicherten JSON-Datei.")
@click.option("--iterations", type=int, default=None,
              help="Iterationsbudget (überschreibt die Config).")
@click.option("--time-limit", type=float, default=None,
              help="Zeitlimit in Sekunden (überschreibt die Config).")
def cmd_optimize(json_path: str, iterations, time_limit):
    """Phase 3: Freie Schüler tauschen, bis die Klassen heterogen sind."""
    data = _load_data_or_abort(json_path)
    # Überschreibungen gelten nur für diesen Lauf, nicht für die gespeicherte Config
    config = data.config.with_overrides(
        max_iterations=iterations, time_limit_seconds=time_limit
    )
    result = _pipeline_or_abort(data.model_copy(update={"config": config})).optimize()
    _print_optimization(result)
    data.save_json(Path(json_path))
    console.print(f"[green]✓[/green] Gespeichert: {json_path}")


# ─── RUN ──────────────────────────────────────────────────────────────────────

@click.command("run")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad zur gespeicherten JSON-Datei.")
@click.option("--generate", "gen_first", is_flag=True, default=False,
              help="Testdaten zunächst generieren (Seed 42).")
@click.option("--export", "export_path", default=None,
              help="Ergebnis zusätzlich als Excel exportieren.")
@click.option("--scenario", default=None,
              help="Lauf mit den Parametern einer gespeicherten Variante.")
def cmd_run(json_path: str, gen_first: bool, export_path, scenario):
    """Führt Verteilung → Parität → Optimierung aus."""
    from analysis.placement_report import PlacementAnalyzer

    if gen_first:
        mgr, config = _load_config()
        from data.fake_data import FakeDataGenerator
        data = FakeDataGenerator(config, seed=42).generate()
    else:
        data = _load_data_or_abort(json_path)

    run_data = data
    if scenario:
        from config.manager import ConfigManager
        try:
            variant = ConfigManager().load_scenario(scenario)
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)
        # Schüler werden geteilt, die gespeicherte Config bleibt unverändert
        run_data = data.model_copy(update={"config": variant})
        console.print(f"Szenario: [bold]{scenario}[/bold]")

    console.print("[bold]Pipeline: Verteilung → Parität → Optimierung[/bold]")
    result = _pipeline_or_abort(run_data).run()

    _print_allocation(result.allocation)
    _print_parity(result.parity)
    _print_optimization(result.optimization)
    _print_unplaced(result.unplaced)
    for w in result.combined_warnings:
        console.print(f"  [yellow]• {w}[/yellow]")

    analyzer = PlacementAnalyzer()
    analyzer.print_rich(analyzer.analyze(run_data), run_data.config.parity.tolerance_percent)

    data.save_json(Path(json_path))
    console.print(f"[green]✓[/green] Gespeichert: {json_path}")

    if export_path:
        from export.excel_export import ExcelExporter
        ExcelExporter(run_data, result).export(Path(export_path))
        console.print(f"[green]✓[/green] Excel gespeichert: {export_path}")


# ─── EXPORT ───────────────────────────────────────────────────────────────────

@click.command("export")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad zur gespeicherten JSON-Datei.")
@click.option("--output", "-o", default="output/klassenverteilung.xlsx",
              help="Ausgabepfad der Excel-Datei.")
def cmd_export(json_path: str, output: str):
    """Exportiert den Datensatz als Excel (Schüler, Klassen, Diagnose)."""
    from export.excel_export import ExcelExporter

    data = _load_data_or_abort(json_path)
    ExcelExporter(data).export(Path(output))
    console.print(f"[green]✓[/green] Excel gespeichert: {output}")


# ─── SCENARIO ─────────────────────────────────────────────────────────────────

_POLICY_CHOICE = click.Choice([p.value for p in ParityPolicy])


@click.group("scenario")
def cmd_scenario():
    """Verteilungsvarianten verwalten (Toleranz, Tauschregel, Suchbudget)."""


@cmd_scenario.command("save")
@click.argument("name")
@click.option("--description", "-d", default="", help="Beschreibung der Variante.")
@click.option("--tolerance", type=float, default=None,
              help="Paritäts-Toleranz in Prozentpunkten.")
@click.option("--policy", type=_POLICY_CHOICE, default=None,
              help="Tauschregel der Optimierung (preserve/allow).")
@click.option("--iterations", type=int, default=None, help="Iterationsbudget.")
@click.option("--time-limit", type=float, default=None, help="Zeitlimit in Sekunden.")
@click.option("--seed", type=int, default=None, help="Zufalls-Seed.")
@click.option("--force", is_flag=True, default=False,
              help="Vorhandenes Szenario überschreiben.")
def scenario_save(name: str, description: str, tolerance, policy, iterations,
                  time_limit, seed, force: bool):
    """Speichert die aktuelle Config (mit Änderungen) als Variante."""
    from pydantic import ValidationError

    mgr, config = _load_config()
    try:
        variant = config.with_overrides(
            tolerance_percent=tolerance,
            parity_policy=ParityPolicy(policy) if policy else None,
            max_iterations=iterations,
            time_limit_seconds=time_limit,
            seed=seed,
        )
        mgr.save_scenario(variant, name, description, overwrite=force)
    except (ValidationError, FileExistsError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


@cmd_scenario.command("load")
@click.argument("name")
def scenario_load(name: str):
    """Setzt eine Variante als aktive Konfiguration."""
    from config.manager import ConfigManager
    mgr = ConfigManager()
    try:
        config = mgr.load_scenario(name)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    mgr.save(config)
    console.print(f"[green]✓[/green] Szenario '{name}' als aktive Config gesetzt.")


@cmd_scenario.command("list")
def scenario_list():
    """Listet die Varianten mit ihren Lauf-Parametern auf."""
    from config.manager import ConfigManager
    scenarios = ConfigManager().list_scenarios()

    if not scenarios:
        console.print("[dim]Keine Szenarien vorhanden.[/dim]")
        return

    table = Table(title="Verteilungsvarianten", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Toleranz", justify="right")
    table.add_column("Tausch")
    table.add_column("Iterationen", justify="right")
    table.add_column("Zeitlimit", justify="right")
    table.add_column("Seed", justify="right")
    table.add_column("Erstellt")
    table.add_column("Beschreibung")
    for s in scenarios:
        table.add_row(
            s.name,
            f"{s.tolerance_percent:g} Pp.",
            s.parity_policy.value,
            str(s.max_iterations),
            f"{s.time_limit_seconds:g}s",
            "–" if s.seed is None else str(s.seed),
            s.created,
            s.description,
        )
    console.print(table)


# ─── HAUPT-CLI ────────────────────────────────────────────────────────────────

@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False,
              help="Ausführliches Logging der Verteilungsphasen.")
def cli(verbose: bool):
    """Klassenverteilung für einen Jahrgang (LV2/Optionen, Parität, Heterogenität).

    Starten Sie mit: python main.py generate
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def main():
    """Einstiegspunkt."""
    cli()


# Befehle registrieren
cli.add_command(cmd_config)
cli.add_command(cmd_generate)
cli.add_command(cmd_template)
cli.add_command(cmd_import)
cli.add_command(cmd_analyze)
cli.add_command(cmd_validate)
cli.add_command(cmd_allocate)
cli.add_command(cmd_complete)
cli.add_command(cmd_optimize)
cli.add_command(cmd_run)
cli.add_command(cmd_export)
cli.add_command(cmd_scenario)


if __name__ == "__main__":
    main()
