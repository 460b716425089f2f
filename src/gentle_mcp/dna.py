"""
Sequence computations the engine treats as opaque.

Restriction digests, PCR, file import and export are delegated to pydna and
Biopython. Each function takes and returns plain strings and records so the
engine never handles library objects directly.
"""

import re
from pathlib import Path
from typing import List, Tuple

import Bio.Restriction as Restriction
from Bio.Restriction.Restriction import RestrictionType
from Bio.Seq import Seq
from pydna.amplify import Anneal
from pydna.dseqrecord import Dseqrecord
from pydna.readers import read

from gentle_mcp.errors import EngineError, ErrorCode
from gentle_mcp.lineage import SequenceOrigin
from gentle_mcp.state import SequenceEnd, SequenceFeature, SequenceRecord

FASTA_SUFFIXES = (".fa", ".fasta", ".fna", ".ffn", ".faa")

_DNA_TEXT = re.compile(r"[^A-Za-z]")


def normalize_dna_text(text: str) -> str:
    """Upper-case ``text`` and strip whitespace, digits and punctuation."""
    return _DNA_TEXT.sub("", text).upper()


def reverse_text(text: str) -> str:
    return text[::-1]


def complement_text(text: str) -> str:
    return str(Seq(text).complement())


def reverse_complement_text(text: str) -> str:
    return str(Seq(text).reverse_complement())


def resolve_enzymes(names: List[str]) -> Tuple[List[RestrictionType], List[str]]:
    """
    Look up restriction enzymes by name in the Biopython REBASE catalogue.

    Returns:
        (found, missing): unique known enzymes in request order, and the
        unknown names in request order.

    Raises:
        EngineError: if ``names`` is empty or none of them is known.
    """
    if not names:
        raise EngineError(ErrorCode.InvalidInput, "Digest requires at least one enzyme")
    found: List[RestrictionType] = []
    missing: List[str] = []
    seen = set()
    for name in names:
        enzyme = getattr(Restriction, name.strip(), None)
        if isinstance(enzyme, RestrictionType):
            if str(enzyme) not in seen:
                seen.add(str(enzyme))
                found.append(enzyme)
        elif name not in missing:
            missing.append(name)
    if not found:
        raise EngineError(
            ErrorCode.InvalidInput,
            f"None of the requested enzymes are known: {','.join(names)}",
        )
    return found, missing


def digest(
    sequence: str,
    circular: bool,
    enzymes: List[RestrictionType],
    max_fragments: int,
) -> List[SequenceRecord]:
    """
    Cut ``sequence`` with all ``enzymes`` at once.

    Returns one record per fragment, in pydna order, with the single-stranded
    ends pydna reports. A sequence without any site comes back as a single
    uncut fragment.

    Raises:
        EngineError: if more than ``max_fragments`` fragments would be produced.
    """
    try:
        fragments = Dseqrecord(sequence, circular=circular).cut(*enzymes)
    except (ValueError, TypeError) as e:
        raise EngineError(ErrorCode.Internal, f"Digest failed: {e}")
    if len(fragments) > max_fragments:
        raise EngineError(
            ErrorCode.InvalidInput,
            f"Digest produced more than max_fragments_per_container={max_fragments}",
        )
    if not fragments:
        return [SequenceRecord(sequence=sequence, circular=circular)]
    return [_fragment_record(fragment) for fragment in fragments]


def _fragment_record(fragment: Dseqrecord) -> SequenceRecord:
    if fragment.circular:
        return SequenceRecord(sequence=str(fragment.seq).upper(), circular=True)
    left_kind, left_sticky = fragment.seq.five_prime_end()
    right_kind, right_sticky = fragment.seq.three_prime_end()
    return SequenceRecord(
        sequence=str(fragment.seq).upper(),
        left_end=SequenceEnd(kind=left_kind, sticky=str(left_sticky).upper()),
        right_end=SequenceEnd(kind=right_kind, sticky=str(right_sticky).upper()),
    )


def ends_ligate(left: SequenceEnd, right: SequenceEnd, blunt: bool) -> bool:
    """
    Whether the right end of one molecule can be joined to the left end of another.

    Sticky ends must be of the same type with reverse-complementary
    single-stranded bases, the rule pydna applies when adding two ``Dseq``.
    """
    if blunt:
        return left.is_blunt and right.is_blunt
    if left.is_blunt or right.is_blunt or left.kind != right.kind:
        return False
    return left.sticky == reverse_complement_text(right.sticky)


def ligate(left: SequenceRecord, right: SequenceRecord, circularize: bool, blunt: bool) -> SequenceRecord:
    """
    Join ``left`` and ``right`` head to tail.

    The shared single-stranded bases appear once in the product. With
    ``circularize`` the product is closed when its own two ends are compatible;
    otherwise it stays linear.
    """
    text = left.sequence + right.sequence[len(left.right_end.sticky):]
    if circularize and ends_ligate(right.right_end, left.left_end, blunt):
        closing = len(right.right_end.sticky)
        return SequenceRecord(sequence=text[:len(text) - closing] if closing else text, circular=True)
    return SequenceRecord(sequence=text, left_end=left.left_end, right_end=right.right_end)


def pcr_products(template: str, circular: bool, forward_primer: str, reverse_primer: str) -> List[str]:
    """
    Simulate PCR with perfectly annealing primers.

    Raises:
        EngineError: circular templates, empty primers, primers that do not
            anneal, or primer pairs without a product.
    """
    if circular:
        raise EngineError(ErrorCode.Unsupported, "PCR on circular templates is not implemented yet")
    fwd = normalize_dna_text(forward_primer)
    rev = normalize_dna_text(reverse_primer)
    if not fwd or not rev:
        raise EngineError(ErrorCode.InvalidInput, "PCR primers must not be empty")

    template_record = Dseqrecord(template)
    annealing = Anneal([Dseqrecord(fwd), Dseqrecord(rev)], template_record, limit=min(len(fwd), len(rev)))
    if not annealing.forward_primers:
        raise EngineError(ErrorCode.InvalidInput, "Forward primer not found on template")
    if not annealing.reverse_primers:
        raise EngineError(ErrorCode.InvalidInput, "Reverse primer binding site not found on template")
    products = annealing.products
    if not products:
        raise EngineError(ErrorCode.InvalidInput, "No valid forward/reverse primer pair produced an amplicon")
    return [str(product.seq).upper() for product in products]


def extract_region(sequence: str, circular: bool, start: int, end: int) -> str:
    """
    Slice ``[start, end)``; on circular sequences ``start > end`` wraps the origin.

    Raises:
        EngineError: if the region is empty or out of bounds.
    """
    if start == end:
        raise EngineError(ErrorCode.InvalidInput, "ExtractRegion requires from != to")
    length = len(sequence)
    if start > length or end > length:
        raise EngineError(ErrorCode.InvalidInput, f"Could not extract region {start}..{end}: sequence length is {length}")
    if start < end:
        return sequence[start:end]
    if not circular:
        raise EngineError(
            ErrorCode.InvalidInput,
            f"Could not extract region {start}..{end} from a linear sequence",
        )
    return sequence[start:] + sequence[:end]


def classify_import_origin(path: str, record: SequenceRecord) -> SequenceOrigin:
    """Guess the origin of an imported file from its suffix and source feature."""
    if path.lower().endswith(FASTA_SUFFIXES):
        return SequenceOrigin.ImportedSynthetic
    for feature in record.features:
        if feature.kind.upper() != "SOURCE":
            continue
        for key in ("mol_type", "molecule_type"):
            for value in feature.qualifiers.get(key, []):
                value = value.lower()
                if "synthetic" in value:
                    return SequenceOrigin.ImportedSynthetic
                if "cdna" in value or "mrna" in value or "transcript" in value:
                    return SequenceOrigin.ImportedCdna
                if "genomic" in value:
                    return SequenceOrigin.ImportedGenomic
    return SequenceOrigin.ImportedUnknown


def read_sequence_file(path: str) -> SequenceRecord:
    """
    Import the first record of a GenBank or FASTA file.

    Raises:
        EngineError: if the file is missing or cannot be parsed.
    """
    if not Path(path).is_file():
        raise EngineError(ErrorCode.InvalidInput, f"Could not load sequence file '{path}': no such file")
    try:
        record = read(path)
    except (OSError, ValueError) as e:
        raise EngineError(ErrorCode.InvalidInput, f"Could not load sequence file '{path}': {e}")
    features = []
    for feature in record.features:
        qualifiers = {
            key: [str(v) for v in (values if isinstance(values, list) else [values])]
            for key, values in feature.qualifiers.items()
        }
        features.append(SequenceFeature(
            kind=feature.type,
            start=int(feature.location.start),
            end=int(feature.location.end),
            strand=feature.location.strand,
            qualifiers=qualifiers,
        ))
    return SequenceRecord(
        sequence=str(record.seq).upper(),
        name=record.name or None,
        description=record.description or "",
        circular=bool(record.circular),
        features=features,
    )


def derive_seq_id(path: str) -> str:
    stem = Path(path).stem
    return stem if stem else "sequence"


def format_sequence(seq_id: str, record: SequenceRecord, file_format: str) -> str:
    """Render ``record`` as GenBank ("gb") or FASTA ("fasta") text."""
    # GenBank LOCUS names are limited to 16 characters
    name = (record.name or seq_id).replace(" ", "_")[:16]
    dseq = Dseqrecord(record.sequence, name=name, circular=record.circular)
    dseq.id = seq_id
    dseq.description = record.description or seq_id
    return dseq.format(file_format)


def write_sequence_file(seq_id: str, record: SequenceRecord, path: str, file_format: str) -> None:
    """
    Raises:
        EngineError: code ``Io`` if the file cannot be written.
    """
    text = format_sequence(seq_id, record, file_format)
    try:
        Path(path).write_text(text, encoding="utf-8")
    except (OSError, ValueError) as e:
        label = "GenBank" if file_format == "gb" else "FASTA"
        raise EngineError(ErrorCode.Io, f"Could not write {label} file '{path}': {e}")
