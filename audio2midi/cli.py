"""Command-line interface for audio2midi.

Provides commands for:
- transcribe: Convert audio to MIDI
- inspect: List the notes of a MIDI file
- info: Show audio file information
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .core.constants import (
    DEFAULT_FRAME_THRESHOLD,
    DEFAULT_MIN_NOTE_FRAMES,
    DEFAULT_ONSET_THRESHOLD,
)

app = typer.Typer(
    name="audio2midi",
    help="Audio to MIDI Transcription",
    rich_markup_mode="markdown",
)
console = Console()

ESTIMATORS = ("cqt", "basic-pitch")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _make_source(estimator: str):
    from .transcription import BasicPitchSource, CQTFrameSource

    if estimator == "basic-pitch":
        return BasicPitchSource()
    return CQTFrameSource()


@app.command()
def transcribe(
    input_file: Path = typer.Argument(..., help="Input audio file, WAV, MP3, FLAC, ..."),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Output MIDI file path"
    ),
    estimator: str = typer.Option(
        "cqt", "-e", "--estimator", help="Pitch estimator: cqt/basic-pitch"
    ),
    onset_threshold: float = typer.Option(
        DEFAULT_ONSET_THRESHOLD, "--onset-threshold", help="Onset activation needed to start a note (0-1)"
    ),
    frame_threshold: float = typer.Option(
        DEFAULT_FRAME_THRESHOLD, "--frame-threshold", help="Frame activation needed to sustain a note (0-1)"
    ),
    min_note_frames: int = typer.Option(
        DEFAULT_MIN_NOTE_FRAMES, "--min-note-frames", help="Shortest note kept, in frames"
    ),
    tempo: float = typer.Option(
        120.0, "-t", "--tempo", help="Tempo written to the MIDI file (BPM). 0 = auto-detect"
    ),
    melodia_trick: bool = typer.Option(
        False, "--melodia-trick/--no-melodia-trick", help="Also recover notes that have no detected onset"
    ),
    bends: bool = typer.Option(
        True, "--bends/--no-bends", help="Write pitch bends"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output results as JSON (for scripting)"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
):
    """Transcribe an audio file to MIDI.

    **Examples:**

        audio2midi transcribe song.wav

        audio2midi transcribe song.mp3 -o output.mid --onset-threshold 0.4
    """
    from .core import TranscriptionError
    from .input import AudioLoader
    from .pipeline import PipelineConfig, PipelineOrchestrator
    from .processing import DecoderConfig

    _configure_logging(verbose)

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    if estimator not in ESTIMATORS:
        console.print(f"[red]Error: Unknown estimator '{estimator}'. Choose from: {', '.join(ESTIMATORS)}[/red]")
        raise typer.Exit(1)

    decoder_config = DecoderConfig(
        onset_threshold=onset_threshold,
        frame_threshold=frame_threshold,
        min_note_frames=min_note_frames,
        melodia_trick=melodia_trick,
    )
    try:
        decoder_config.validate()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    # Default output path
    if output is None:
        output = input_file.with_suffix(".mid")

    config = PipelineConfig(
        decoder=decoder_config,
        extract_bends=bends,
        tempo=tempo if tempo > 0 else None,
    )

    try:
        if not json_output:
            console.print(f"[blue]Loading audio:[/blue] {input_file}")
        buffer = AudioLoader().load(str(input_file))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
            disable=json_output,
        ) as progress:
            task = progress.add_task("Starting...", total=100)

            def on_change(state):
                progress.update(task, completed=state.percent, description=state.message)

            orchestrator = PipelineOrchestrator(_make_source(estimator), config, on_change=on_change)
            result = orchestrator.convert(buffer)

    except TranscriptionError as e:
        console.print(f"[red]Conversion failed: {e}[/red]")
        raise typer.Exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.midi_bytes)

    if json_output:
        console.print_json(data={
            "input": str(input_file),
            "output": str(output),
            "notes_count": len(result.notes),
            "byte_size": result.byte_size,
            "tempo": result.tempo,
            "duration": result.duration,
            "estimator": estimator,
            "timings": result.timings,
        })
        return

    console.print(f"  Detected {len(result.notes)} notes")
    console.print(f"[blue]Exported to:[/blue] {output} ({result.byte_size:,} bytes)")
    console.print("[green]Transcription complete![/green]")

    if verbose:
        console.print("\n[bold]Timing Summary:[/bold]")
        for stage, duration in result.timings.items():
            console.print(f"  {stage}: {duration:.2f}s")
        if result.notes:
            _show_notes_table(result.notes)


@app.command()
def inspect(
    midi_file: Path = typer.Argument(..., help="MIDI file to read"),
):
    """List the notes stored in a MIDI file."""
    import pretty_midi

    if not midi_file.exists():
        console.print(f"[red]Error: File not found: {midi_file}[/red]")
        raise typer.Exit(1)

    try:
        midi = pretty_midi.PrettyMIDI(str(midi_file))
    except (OSError, ValueError, EOFError) as e:
        console.print(f"[red]Error: Could not read MIDI file: {e}[/red]")
        raise typer.Exit(1)

    notes = sorted(
        (note for instrument in midi.instruments for note in instrument.notes),
        key=lambda n: (n.start, n.pitch),
    )
    n_bends = sum(len(instrument.pitch_bends) for instrument in midi.instruments)

    console.print(f"\n[bold]MIDI Info:[/bold] {midi_file.name}")
    console.print(f"  Length: {midi.get_end_time():.2f} seconds")
    console.print(f"  Notes: {len(notes)}")
    console.print(f"  Pitch bends: {n_bends}")

    if notes:
        table = Table(title="Notes")
        table.add_column("Pitch", style="cyan")
        table.add_column("Onset (s)", style="green")
        table.add_column("Duration (s)", style="yellow")
        table.add_column("Velocity", style="magenta")
        for note in notes:
            table.add_row(
                pretty_midi.note_number_to_name(note.pitch),
                f"{note.start:.3f}",
                f"{note.end - note.start:.3f}",
                str(note.velocity),
            )
        console.print(table)


@app.command()
def info(
    input_file: Path = typer.Argument(..., help="Input audio file"),
):
    """Show information about an audio file."""
    from .core import UnsupportedAudioError
    from .input import AudioLoader

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    try:
        buffer = AudioLoader().load(str(input_file))
    except UnsupportedAudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Audio Info:[/bold] {input_file.name}")
    console.print(f"  Duration: {buffer.duration:.2f} seconds")
    console.print(f"  Sample rate: {buffer.sample_rate} Hz")
    console.print(f"  Channels: {buffer.n_channels}")
    console.print(f"  Samples: {buffer.n_samples:,}")


def _show_notes_table(notes):
    """Display notes in a table."""
    table = Table(title="Detected Notes")
    table.add_column("Pitch", style="cyan")
    table.add_column("Onset (s)", style="green")
    table.add_column("Duration (s)", style="yellow")
    table.add_column("Velocity", style="magenta")
    table.add_column("Bend", style="blue")

    for note in notes:
        table.add_row(
            note.pitch_name,
            f"{note.start_time:.3f}",
            f"{note.duration:.3f}",
            str(note.midi_velocity),
            "yes" if note.pitch_bends else "",
        )

    console.print(table)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
