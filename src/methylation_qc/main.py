import json
from pathlib import Path
from typing import Optional

import typer

from .config import settings
from .core.errors import InvalidInputError
from .core.probes import filter_probes, probe_filter_summary
from .core.qc import flag_samples
from .core.thresholds import GroupRule, classify_samples, rules_from_dict
from .services.io import (
    generate_sample_qc_report,
    load_snp_probes,
    read_detection_matrix,
    read_qc_table,
    read_sample_sheet,
    write_retained_probes,
    write_sample_flags,
    write_sample_levels,
)

# unreadable or malformed inputs end in "Error: ..." and exit code 1
INPUT_ERRORS = (InvalidInputError, json.JSONDecodeError, OSError, RuntimeError)

app = typer.Typer(
    help="Sample stratification and QC filtering rules for methylation array reports"
)


def _load_rules(rules_json: Optional[Path]):
    if rules_json is None:
        return None
    with open(rules_json) as f:
        return rules_from_dict(json.load(f))


def _fail(exc: Exception) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """Show the configured defaults."""
    typer.echo(f"Environment: {settings.environment}")
    typer.echo(f"Quantiles: {settings.low_quantile} / {settings.high_quantile}")
    typer.echo(f"Intensity cutoff: {settings.intensity_cutoff}")
    typer.echo(
        f"Detection alpha: probes {settings.probe_alpha}, "
        f"samples {settings.sample_alpha}"
    )


@app.command()
def levels(
    sample_sheet: Path,
    output_dir: Path,
    id_col: str = settings.id_col,
    group_col: str = settings.group_col,
    metric: str = settings.metric_col,
    low_quantile: float = settings.low_quantile,
    high_quantile: float = settings.high_quantile,
    rules_json: Optional[Path] = typer.Option(
        None, help="JSON mapping group -> rule (metric, quantiles, fixed_cuts)"
    ),
    prefix: str = "sample_qc",
) -> None:
    """Label samples Low/Medium/High per group."""
    try:
        samples = read_sample_sheet(sample_sheet, id_col=id_col, group_col=group_col)
        annotated, thresholds = classify_samples(
            samples,
            id_col=id_col,
            group_col=group_col,
            rules=_load_rules(rules_json),
            default_rule=GroupRule(metric, low_quantile, high_quantile),
        )
    except INPUT_ERRORS as exc:
        _fail(exc)
    write_sample_levels(annotated, thresholds, output_dir, prefix)
    counts = annotated["quantity_level"].value_counts()
    typer.echo(
        ", ".join(f"{level}: {counts.get(level, 0)}" for level in counts.index)
    )


@app.command()
def flag(
    qc_table: Path,
    output_file: Path,
    cutoff: float = settings.intensity_cutoff,
    id_col: Optional[str] = None,
) -> None:
    """Flag samples good/bad on mean median intensity."""
    try:
        flagged = flag_samples(read_qc_table(qc_table, id_col), cutoff=cutoff)
    except INPUT_ERRORS as exc:
        _fail(exc)
    write_sample_flags(flagged, output_file)
    n_bad = int((flagged["qc_flag"] == "bad").sum())
    typer.echo(f"{n_bad} of {len(flagged)} samples flagged bad")


@app.command()
def probes(
    detection: Path,
    output_file: Path,
    snp_probes: Optional[Path] = None,
    alpha: float = settings.probe_alpha,
    probe_col: Optional[str] = None,
) -> None:
    """Write probes detected in all samples and not overlapping SNPs."""
    try:
        det = read_detection_matrix(detection, probe_col=probe_col)
        exclude = load_snp_probes(snp_probes) if snp_probes else None
        retained = filter_probes(det, alpha=alpha, exclude=exclude)
        summary = probe_filter_summary(det, alpha=alpha, exclude=exclude)
    except INPUT_ERRORS as exc:
        _fail(exc)
    write_retained_probes(retained, output_file)
    typer.echo(f"Retained {summary['retained']} of {summary['total']} probes")


@app.command()
def report(
    output_dir: Path,
    sample_sheet: Optional[Path] = None,
    qc_table: Optional[Path] = None,
    detection: Optional[Path] = None,
    snp_probes: Optional[Path] = None,
    rules_json: Optional[Path] = None,
    prefix: str = "sample_qc",
) -> None:
    """Run every rule on the given inputs and write tables and figures."""
    if sample_sheet is None and qc_table is None and detection is None:
        _fail(ValueError("Provide --sample-sheet, --qc-table or --detection"))
    default_rule = GroupRule(
        settings.metric_col, settings.low_quantile, settings.high_quantile
    )
    try:
        result = generate_sample_qc_report(
            output_dir=output_dir,
            sample_sheet=sample_sheet,
            qc_table=qc_table,
            detection=detection,
            snp_probes=snp_probes,
            prefix=prefix,
            id_col=settings.id_col,
            group_col=settings.group_col,
            rules=_load_rules(rules_json),
            default_rule=default_rule,
            intensity_cutoff=settings.intensity_cutoff,
            probe_alpha=settings.probe_alpha,
            sample_alpha=settings.sample_alpha,
            save_formats=settings.save_formats,
        )
    except INPUT_ERRORS as exc:
        _fail(exc)
    typer.echo(f"Wrote {len(result['files'])} files to {output_dir}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
