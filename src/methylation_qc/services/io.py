import warnings
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

import matplotlib.pyplot as plt
import pandas as pd
from pandas import DataFrame

from methylation_qc.core.errors import InvalidInputError
from methylation_qc.core.plots import (
    plot_detection_means,
    plot_qc_intensities,
    plot_quantity_levels,
)
from methylation_qc.core.probes import filter_probes, probe_filter_summary
from methylation_qc.core.qc import (
    DEFAULT_INTENSITY_CUTOFF,
    combine_flags,
    detection_summary,
    flag_samples,
)
from methylation_qc.core.thresholds import GroupRule, classify_samples


def save_figure(
    f,
    folder: Union[Path, str],
    name: str,
    formats: Sequence[str] = ("png", "svg", "pdf"),
    bbox_inches: str = "tight",
) -> List[Path]:
    folder = Path(folder)
    folder.mkdir(exist_ok=True, parents=True)
    saved = []
    for fmt in formats:
        outfile = folder / f"{name}.{fmt.lstrip('.')}"
        f.savefig(outfile, bbox_inches=bbox_inches)
        saved.append(outfile)
    return saved


def read_dataframe(path: Union[str, Path]) -> DataFrame:
    """
    Read a sample sheet, QC table or detection matrix by file extension.

    .csv is comma separated, .xls/.xlsx go through pandas' Excel reader,
    everything else (.tsv, .txt, minfi exports without extension) is read
    as tab separated.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"File does not exist: {path}")

    suffix = path.suffix.lower()

    try:
        if suffix == ".csv":
            return pd.read_csv(path)
        if suffix in {".xls", ".xlsx"}:
            return pd.read_excel(path)
        return pd.read_csv(path, sep="\t")
    except Exception as exc:
        raise RuntimeError(f"Failed to read file '{path}': {exc}") from exc


def read_sample_sheet(
    path: Union[Path, str],
    id_col: str = "sample",
    group_col: str = "group",
    metric_cols: Optional[Iterable[str]] = None,
) -> DataFrame:
    """
    Load and validate the sample sheet.

    Parameters
    ----------
    path : Path or str
        Sample sheet with one row per sample.
    id_col : str
        Sample identifier column.
    group_col : str
        Stratifying group column (e.g. tissue).
    metric_cols : iterable of str, optional
        Quantity metric columns that must be present.

    Returns
    -------
    DataFrame
        Validated sample sheet.
    """
    samples = read_dataframe(path)
    required = [id_col, group_col] + list(metric_cols or [])
    missing = [col for col in required if col not in samples.columns]
    if missing:
        raise InvalidInputError(
            f"Sample sheet missing required columns: {missing}. "
            f"Found: {list(samples.columns)}"
        )
    duplicated = samples[id_col][samples[id_col].duplicated()]
    if not duplicated.empty:
        raise InvalidInputError(
            f"Duplicated sample ids in sample sheet: "
            f"{sorted(duplicated.astype(str).unique())}"
        )
    return samples


def _indexed_table(path: Union[Path, str], index_col: Optional[str]) -> DataFrame:
    df = read_dataframe(path)
    if index_col is None:
        index_col = df.columns[0]
    if index_col not in df.columns:
        raise InvalidInputError(
            f"Column '{index_col}' not found in {path}. "
            f"Found: {list(df.columns)}"
        )
    df = df.set_index(index_col)
    # ids must match the string sample headers of the detection matrix
    df.index = df.index.astype(str)
    return df


def read_detection_matrix(
    path: Union[Path, str], probe_col: Optional[str] = None
) -> DataFrame:
    """
    Load a probe x sample detection p-value matrix.

    The probe id column is `probe_col`, or the first column if not given.
    All remaining columns must be numeric.
    """
    detection = _indexed_table(path, probe_col)
    non_numeric = [
        col
        for col in detection.columns
        if not pd.api.types.is_numeric_dtype(detection[col])
    ]
    if non_numeric:
        raise InvalidInputError(
            f"Detection matrix has non-numeric sample columns: {non_numeric}"
        )
    return detection


def read_qc_table(
    path: Union[Path, str], id_col: Optional[str] = None
) -> DataFrame:
    """Load per-sample intensity medians (mMed/uMed), indexed by sample."""
    return _indexed_table(path, id_col)


def load_snp_probes(snp_file: Union[Path, str]) -> Set[str]:
    """
    Load SNP-overlapping probe ids from a text file, one id per line.
    """
    snp_file = Path(snp_file)
    if not snp_file.exists():
        raise FileNotFoundError(f"SNP probe file not found: {snp_file}")
    with open(snp_file) as f:
        probes = {line.strip() for line in f if line.strip()}
    return probes


def write_sample_levels(
    annotated: DataFrame,
    thresholds: DataFrame,
    output_dir: Union[Path, str],
    prefix: str = "sample_qc",
) -> Dict[str, Path]:
    """Write the annotated sample table and per-group cut points as TSV."""
    output_dir = Path(output_dir)
    output_dir.mkdir(exist_ok=True, parents=True)
    levels_file = output_dir / f"{prefix}_levels.tsv"
    thresholds_file = output_dir / f"{prefix}_thresholds.tsv"
    annotated.to_csv(levels_file, sep="\t", index=False)
    thresholds.to_csv(thresholds_file, sep="\t")
    print(f"Saved sample levels to {levels_file}")
    return {"levels": levels_file, "thresholds": thresholds_file}


def write_retained_probes(
    retained: Iterable[str], output_file: Union[Path, str]
) -> Path:
    """Write retained probe ids, sorted, one per line."""
    output_file = Path(output_file)
    output_file.parent.mkdir(exist_ok=True, parents=True)
    with open(output_file, "w") as f:
        for probe in sorted(retained):
            f.write(f"{probe}\n")
    print(f"Saved retained probes to {output_file}")
    return output_file


def write_sample_flags(
    flags: DataFrame, output_file: Union[Path, str]
) -> Path:
    """Write the per-sample flag table as TSV, keyed by sample."""
    output_file = Path(output_file)
    output_file.parent.mkdir(exist_ok=True, parents=True)
    flags.to_csv(output_file, sep="\t", index_label="sample")
    print(f"Saved sample flags to {output_file}")
    return output_file


def _as_frame(table, reader, **kwargs) -> DataFrame:
    if isinstance(table, DataFrame):
        return table
    return reader(table, **kwargs)


def generate_sample_qc_report(
    output_dir: Union[Path, str],
    sample_sheet: Union[Path, str, DataFrame, None] = None,
    qc_table: Union[Path, str, DataFrame, None] = None,
    detection: Union[Path, str, DataFrame, None] = None,
    snp_probes: Union[Path, str, Set[str], None] = None,
    prefix: str = "sample_qc",
    id_col: str = "sample",
    group_col: str = "group",
    rules: Optional[Mapping[str, GroupRule]] = None,
    default_rule: Optional[GroupRule] = GroupRule(),
    intensity_cutoff: float = DEFAULT_INTENSITY_CUTOFF,
    probe_alpha: float = 0.01,
    sample_alpha: float = 0.05,
    save_formats: Sequence[str] = ("png", "pdf"),
) -> Dict:
    """
    Run all sample and probe rules and write tables and figures.

    Every input is optional; the corresponding step is skipped when an
    input is missing.

    Parameters
    ----------
    output_dir : Path or str
        Output directory.
    sample_sheet : Path, str, or DataFrame, optional
        Sample sheet for quantity stratification.
    qc_table : Path, str, or DataFrame, optional
        Per-sample mMed/uMed table for intensity QC.
    detection : Path, str, or DataFrame, optional
        Probe x sample detection p-values.
    snp_probes : Path, str, or set, optional
        Probe ids to exclude.
    prefix : str
        Filename prefix.
    id_col, group_col : str
        Sample sheet columns.
    rules, default_rule :
        Stratification rules, see classify_samples().
    intensity_cutoff : float
        Bad-sample cutoff on mean log2 median intensity.
    probe_alpha : float
        Detection alpha for probe filtering.
    sample_alpha : float
        Detection alpha for the per-sample summary.
    save_formats : sequence of str
        Figure formats.

    Returns
    -------
    dict
        Result tables under 'levels', 'thresholds', 'intensity_qc',
        'detection_qc', 'flags', 'retained_probes', 'probe_summary'
        (absent steps are None) and written paths under 'files'.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(exist_ok=True, parents=True)
    saved_files: Dict[str, Path] = {}
    figures = []
    result: Dict = {
        "levels": None,
        "thresholds": None,
        "intensity_qc": None,
        "detection_qc": None,
        "flags": None,
        "retained_probes": None,
        "probe_summary": None,
    }

    groups = None
    if sample_sheet is not None:
        samples = _as_frame(
            sample_sheet, read_sample_sheet, id_col=id_col, group_col=group_col
        )
        print(
            f"Classifying {len(samples)} samples in "
            f"{samples[group_col].nunique()} groups..."
        )
        annotated, thresholds = classify_samples(
            samples,
            id_col=id_col,
            group_col=group_col,
            rules=rules,
            default_rule=default_rule,
        )
        saved_files.update(
            write_sample_levels(annotated, thresholds, output_dir, prefix)
        )
        result["levels"], result["thresholds"] = annotated, thresholds
        groups = annotated.set_index(annotated[id_col].astype(str))[group_col]
        figures.append(
            ("quantity_levels", lambda: plot_quantity_levels(
                annotated, thresholds, group_col=group_col
            ))
        )

    flag_series = []
    if qc_table is not None:
        qc = _as_frame(qc_table, read_qc_table).rename(index=str)
        intensity_qc = flag_samples(qc, cutoff=intensity_cutoff)
        n_bad = int((intensity_qc["qc_flag"] == "bad").sum())
        print(f"Intensity QC: {n_bad} of {len(intensity_qc)} samples flagged bad")
        result["intensity_qc"] = intensity_qc
        flag_series.append(intensity_qc["qc_flag"])
        figures.append(
            ("intensity_qc", lambda: plot_qc_intensities(
                intensity_qc, cutoff=intensity_cutoff
            ))
        )

    if detection is not None:
        det = _as_frame(detection, read_detection_matrix).rename(columns=str)
        det_qc = detection_summary(det, alpha=sample_alpha)
        result["detection_qc"] = det_qc
        flag_series.append(det_qc["detection_flag"])
        figures.append(
            ("detection_p", lambda: plot_detection_means(
                det_qc, alpha=sample_alpha, groups=groups
            ))
        )

        if snp_probes is not None and not isinstance(snp_probes, (set, frozenset)):
            snp_probes = load_snp_probes(snp_probes)
        retained = filter_probes(det, alpha=probe_alpha, exclude=snp_probes)
        summary = probe_filter_summary(det, alpha=probe_alpha, exclude=snp_probes)
        print(
            f"Probe filter: retained {summary['retained']} of "
            f"{summary['total']} probes "
            f"({summary['failed_detection']} failed detection, "
            f"{summary['snp_overlap']} SNP overlaps)"
        )
        result["retained_probes"] = retained
        result["probe_summary"] = summary
        saved_files["retained_probes"] = write_retained_probes(
            retained, output_dir / f"{prefix}_retained_probes.txt"
        )
        summary_file = output_dir / f"{prefix}_probe_summary.tsv"
        pd.Series(summary, name="probes").to_csv(
            summary_file, sep="\t", index_label="step"
        )
        saved_files["probe_summary"] = summary_file

    if flag_series:
        flags = pd.concat(
            [
                t
                for t in (result["intensity_qc"], result["detection_qc"])
                if t is not None
            ],
            axis=1,
        )
        flags["sample_flag"] = combine_flags(*flag_series)
        result["flags"] = flags
        saved_files["flags"] = write_sample_flags(
            flags, output_dir / f"{prefix}_flags.tsv"
        )

    for plot_name, plot_func in figures:
        print(f"Generating {plot_name} plot...")
        try:
            fig = plot_func()
        except Exception as e:
            warnings.warn(f"Failed to generate {plot_name} plot: {e}")
            continue
        for path in save_figure(fig, output_dir, f"{prefix}_{plot_name}", save_formats):
            saved_files[f"{plot_name}_{path.suffix.lstrip('.')}"] = path
        plt.close(fig)

    print(f"\nSample QC report complete. Files saved to {output_dir}")
    result["files"] = saved_files
    return result
