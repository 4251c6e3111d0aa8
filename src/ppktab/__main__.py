"""
Command-line interface for ppktab.

Validates a phenopacket curation template and, when the whole template is
accepted, writes one phenopacket JSON file per subject.
"""

import click
import logging
import pathlib
import sys
import typing

from datetime import datetime
from google.protobuf.json_format import MessageToJson
from stairval.notepad import create_notepad

from .errors import OntologyLoadError
from .loader import load_template
from .ontology import OntologyIndex, load_ontology_index
from .phenopacket import PhenopacketMapper
from .record import RecordBuilder
from .table import Accepted, TableValidator, ValidationOptions, report_to_notepad

logger = logging.getLogger(__name__)


@click.group()
def main():
    """ppktab: validate phenopacket curation templates and export phenopackets."""
    pass


@main.command(name="validate")
@click.option(
    "-e",
    "--excel-path",
    "excel_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="path to the template workbook",
)
@click.option(
    "--hpo",
    "hpo_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="path to the HPO JSON file (hp.json or hp.json.gz)",
)
@click.option("--sheet", "sheet_name", default=None, help="worksheet name (default: first sheet)")
@click.option(
    "-o",
    "--out",
    "out_dir",
    default=None,
    type=click.Path(file_okay=False),
    help="where to write phenopackets (default: phenopackets_from_template/<timestamp>)",
)
@click.option(
    "--replace-obsolete/--no-replace-obsolete",
    default=None,
    help="Replace obsolete HPO terms by their replacement (default: reject).",
)
@click.option(
    "--with-synonyms/--without-synonyms",
    default=True,
    show_default=True,
    help="Load HPO synonyms so column labels may use them (slower to load).",
)
@click.option("--workers", type=click.IntRange(min=1), default=None, help="threads used to validate rows")
@click.option("--hpo-version", default=None, help="HPO release recorded in metadata (default: from the HPO file)")
@click.option("--created-by", default="ppktab", show_default=True, help="curator recorded in metadata")
@click.option("--verbose-logging", is_flag=True, help="log DEBUG messages to stderr")
@click.option("--log-file-path", default=None, type=click.Path(dir_okay=False), help="also append logs to this file")
def validate(
    excel_file: str,
    hpo_path: str,
    sheet_name: typing.Optional[str],
    out_dir: typing.Optional[str],
    replace_obsolete: typing.Optional[bool],
    with_synonyms: bool,
    workers: typing.Optional[int],
    hpo_version: typing.Optional[str],
    created_by: str,
    verbose_logging: bool,
    log_file_path: typing.Optional[str],
):
    """
    Validate the template as a unit, then:
      - on rejection, print every error (and warning) and exit with status 1
      - on acceptance, print warnings and write one phenopacket per subject
    """
    _setup_logging(verbose_logging, log_file_path)

    # 1) Ontology (fatal if it cannot be loaded)
    try:
        ontology = _load_ontology(hpo_path, with_synonyms)
    except OntologyLoadError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    # 2) Validate
    options = ValidationOptions.from_env(max_workers=workers, replace_obsolete_terms=replace_obsolete)
    try:
        table = load_template(excel_file, sheet_name=sheet_name if sheet_name is not None else 0)
    except (OSError, ValueError) as e:
        click.echo(f"Error: could not read {excel_file}: {e}", err=True)
        sys.exit(1)
    result = TableValidator(ontology, options).validate(table)

    # 3) Report
    notepad = create_notepad("template")
    report_to_notepad(result, notepad)
    _report_issues(notepad)
    if not isinstance(result, Accepted):
        click.echo(f"Template rejected with {len(result.errors)} error(s); no phenopackets written.", err=True)
        sys.exit(1)

    # 4) Build and write phenopackets
    output_dir = _prepare_output_dir(out_dir)
    mapper = PhenopacketMapper(
        hpo_version=hpo_version or ontology.version or "unknown",
        created_by=created_by,
    )
    builder = RecordBuilder()
    records = [builder.build(subject) for subject in result.subjects]
    _write_phenopackets(records, mapper, output_dir)

    # 5) Final summary
    click.echo(f"Wrote {len(records)} phenopacket files to {output_dir}")
    n_features = sum(len(r.features) for r in records)
    n_variants = sum(len(r.variants) for r in records)
    click.echo(f"Mapped {n_features} phenotypic features and {n_variants} variants")


def _setup_logging(verbose: bool, log_file_path: typing.Optional[str]) -> None:
    handlers: list[logging.Handler] = []
    if verbose:
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file_path:
        handlers.append(logging.FileHandler(log_file_path, mode="a", encoding="utf-8"))
    if not handlers:
        handlers.append(logging.NullHandler())
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)-7s %(message)s",
        handlers=handlers,
        force=True,
    )


def _load_ontology(hpo_file: str, with_synonyms: bool) -> OntologyIndex:
    # load ontology from JSON
    return load_ontology_index(hpo_file, with_synonyms=with_synonyms)


def _report_issues(notepad):
    # if there were errors, show them
    if notepad.has_errors(include_subsections=True):
        click.echo("Errors found in template:")
        for err in notepad.errors():
            click.echo(f"- {err.message}")
    # show any warnings but keep going
    if notepad.has_warnings(include_subsections=True):
        click.echo("Warnings found in template:")
        for w in notepad.warnings():
            click.echo(f"- {w.message}")


def _prepare_output_dir(out_dir: typing.Optional[str]) -> pathlib.Path:
    if out_dir:
        output_dir = pathlib.Path(out_dir)
    else:
        # use YYYY-MM-DD_HH-MM-SS for human-readable timestamps
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        output_dir = pathlib.Path.cwd() / "phenopackets_from_template" / timestamp
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def _write_phenopackets(records, mapper: PhenopacketMapper, output_dir: pathlib.Path) -> None:
    for record in records:
        phenopacket = mapper.to_phenopacket(record)
        output_path = output_dir / f"{record.id}.json"
        with open(output_path, "w", encoding="utf-8") as out_f:
            out_f.write(MessageToJson(phenopacket))
        logger.debug("Wrote %s", output_path)


if __name__ == "__main__":
    main()
