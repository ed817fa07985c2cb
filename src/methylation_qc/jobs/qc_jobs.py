"""
PyPipeGraph2 job wrappers for methylation sample and probe QC.
"""

from pathlib import Path
from typing import List, Mapping, Optional, Union

from pypipegraph2 import (
    Job,
    MultiFileGeneratingJob,
    FunctionInvariant,
    ParameterInvariant,
)
from methylation_qc.core.thresholds import GroupRule, classify_samples
from methylation_qc.core.probes import filter_probes, probe_filter_summary
from methylation_qc.services.io import (
    generate_sample_qc_report,
    load_snp_probes,
    read_detection_matrix,
    read_sample_sheet,
    write_retained_probes,
    write_sample_levels,
)


def _rules_key(rules: Optional[Mapping[str, GroupRule]], default_rule):
    return (
        tuple(sorted((str(g), repr(r)) for g, r in (rules or {}).items())),
        repr(default_rule),
    )


def sample_levels_job(
    sample_sheet: Union[Path, str],
    output_dir: Union[Path, str],
    prefix: str = "sample_qc",
    id_col: str = "sample",
    group_col: str = "group",
    rules: Optional[Mapping[str, GroupRule]] = None,
    default_rule: Optional[GroupRule] = GroupRule(),
    dependencies: List[Job] = [],
) -> MultiFileGeneratingJob:
    """
    Create pypipegraph job that stratifies samples into quantity levels.

    Parameters
    ----------
    sample_sheet : Path or str
        Sample sheet with id, group and metric columns.
    output_dir : Path or str
        Output directory.
    prefix : str
        Filename prefix for output files.
    id_col, group_col : str
        Sample sheet columns.
    rules : dict, optional
        Mapping group -> GroupRule.
    default_rule : GroupRule, optional
        Rule for groups without an explicit entry.
    dependencies : list
        List of pypipegraph Jobs to depend on.

    Returns
    -------
    MultiFileGeneratingJob
        Job writing '<prefix>_levels.tsv' and '<prefix>_thresholds.tsv'.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(exist_ok=True, parents=True)
    outfiles = [
        output_dir / f"{prefix}_levels.tsv",
        output_dir / f"{prefix}_thresholds.tsv",
    ]

    def __dump(
        outfiles,
        sample_sheet=sample_sheet,
        output_dir=output_dir,
        prefix=prefix,
        id_col=id_col,
        group_col=group_col,
        rules=rules,
        default_rule=default_rule,
    ):
        samples = read_sample_sheet(
            sample_sheet, id_col=id_col, group_col=group_col
        )
        annotated, thresholds = classify_samples(
            samples,
            id_col=id_col,
            group_col=group_col,
            rules=rules,
            default_rule=default_rule,
        )
        write_sample_levels(annotated, thresholds, output_dir, prefix)

    job = MultiFileGeneratingJob(outfiles, __dump).depends_on(dependencies)
    job.depends_on(
        FunctionInvariant(f"{prefix}_classify_samples_func", classify_samples)
    )
    job.depends_on(
        ParameterInvariant(
            f"{prefix}_sample_levels_params",
            (
                str(sample_sheet),
                id_col,
                group_col,
                _rules_key(rules, default_rule),
            ),
        )
    )
    return job


def probe_filter_job(
    detection: Union[Path, str],
    output_dir: Union[Path, str],
    snp_probes: Union[Path, str, None] = None,
    alpha: float = 0.01,
    prefix: str = "sample_qc",
    probe_col: Optional[str] = None,
    dependencies: List[Job] = [],
) -> MultiFileGeneratingJob:
    """
    Create pypipegraph job writing the retained probe list.

    Parameters
    ----------
    detection : Path or str
        Probe x sample detection p-value table.
    output_dir : Path or str
        Output directory.
    snp_probes : Path or str, optional
        File with SNP-overlapping probe ids, one per line.
    alpha : float
        Detection p-value cutoff.
    prefix : str
        Filename prefix for output files.
    probe_col : str, optional
        Probe id column, defaults to the first column.
    dependencies : list
        List of pypipegraph Jobs to depend on.

    Returns
    -------
    MultiFileGeneratingJob
        Job writing '<prefix>_retained_probes.txt' and
        '<prefix>_probe_summary.tsv'.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(exist_ok=True, parents=True)
    outfiles = [
        output_dir / f"{prefix}_retained_probes.txt",
        output_dir / f"{prefix}_probe_summary.tsv",
    ]

    def __dump(
        outfiles,
        detection=detection,
        snp_probes=snp_probes,
        alpha=alpha,
        probe_col=probe_col,
    ):
        det = read_detection_matrix(detection, probe_col=probe_col)
        exclude = load_snp_probes(snp_probes) if snp_probes else None
        retained = filter_probes(det, alpha=alpha, exclude=exclude)
        write_retained_probes(retained, outfiles[0])
        summary = probe_filter_summary(det, alpha=alpha, exclude=exclude)
        with open(outfiles[1], "w") as f:
            f.write("step\tprobes\n")
            for step, count in summary.items():
                f.write(f"{step}\t{count}\n")

    job = MultiFileGeneratingJob(outfiles, __dump).depends_on(dependencies)
    job.depends_on(
        FunctionInvariant(f"{prefix}_filter_probes_func", filter_probes)
    )
    job.depends_on(
        ParameterInvariant(
            f"{prefix}_probe_filter_params",
            (str(detection), str(snp_probes), alpha, str(probe_col)),
        )
    )
    return job


def sample_qc_report_job(
    output_dir: Union[Path, str],
    sample_sheet: Union[Path, str, None] = None,
    qc_table: Union[Path, str, None] = None,
    detection: Union[Path, str, None] = None,
    snp_probes: Union[Path, str, None] = None,
    prefix: str = "sample_qc",
    id_col: str = "sample",
    group_col: str = "group",
    rules: Optional[Mapping[str, GroupRule]] = None,
    default_rule: Optional[GroupRule] = GroupRule(),
    intensity_cutoff: float = 10.5,
    probe_alpha: float = 0.01,
    sample_alpha: float = 0.05,
    save_formats: List[str] = ["png", "pdf"],
    dependencies: List[Job] = [],
) -> MultiFileGeneratingJob:
    """
    Create pypipegraph job for the full sample QC report.

    Wraps services.io.generate_sample_qc_report; the declared output files
    follow the inputs that are given.
    `rules` and `default_rule` select the stratification metric per group,
    see core.thresholds.classify_samples.

    Returns
    -------
    MultiFileGeneratingJob
        Job that generates QC tables and plots.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(exist_ok=True, parents=True)

    outfiles = []
    plot_names = []
    if sample_sheet is not None:
        outfiles += [
            output_dir / f"{prefix}_levels.tsv",
            output_dir / f"{prefix}_thresholds.tsv",
        ]
        plot_names.append("quantity_levels")
    if qc_table is not None:
        plot_names.append("intensity_qc")
    if detection is not None:
        outfiles += [
            output_dir / f"{prefix}_retained_probes.txt",
            output_dir / f"{prefix}_probe_summary.tsv",
        ]
        plot_names.append("detection_p")
    if qc_table is not None or detection is not None:
        outfiles.append(output_dir / f"{prefix}_flags.tsv")
    if not outfiles:
        raise ValueError(
            "sample_qc_report_job needs at least one of sample_sheet, "
            "qc_table or detection"
        )
    for plot_name in plot_names:
        for fmt in save_formats:
            outfiles.append(output_dir / f"{prefix}_{plot_name}.{fmt}")

    def __dump(
        outfiles,
        output_dir=output_dir,
        sample_sheet=sample_sheet,
        qc_table=qc_table,
        detection=detection,
        snp_probes=snp_probes,
        prefix=prefix,
        id_col=id_col,
        group_col=group_col,
        rules=rules,
        default_rule=default_rule,
        intensity_cutoff=intensity_cutoff,
        probe_alpha=probe_alpha,
        sample_alpha=sample_alpha,
        save_formats=save_formats,
    ):
        generate_sample_qc_report(
            output_dir=output_dir,
            sample_sheet=sample_sheet,
            qc_table=qc_table,
            detection=detection,
            snp_probes=snp_probes,
            prefix=prefix,
            id_col=id_col,
            group_col=group_col,
            rules=rules,
            default_rule=default_rule,
            intensity_cutoff=intensity_cutoff,
            probe_alpha=probe_alpha,
            sample_alpha=sample_alpha,
            save_formats=save_formats,
        )

    job = MultiFileGeneratingJob(outfiles, __dump).depends_on(dependencies)
    job.depends_on(
        FunctionInvariant(
            f"{prefix}_generate_sample_qc_report_func",
            generate_sample_qc_report,
        )
    )
    job.depends_on(
        ParameterInvariant(
            f"{prefix}_sample_qc_report_params",
            (
                str(sample_sheet),
                str(qc_table),
                str(detection),
                str(snp_probes),
                id_col,
                group_col,
                _rules_key(rules, default_rule),
                intensity_cutoff,
                probe_alpha,
                sample_alpha,
                tuple(save_formats),
            ),
        )
    )
    return job
