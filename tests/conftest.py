"""Shared fixtures for the GENtle test suite."""

import pytest

from gentle_mcp.engine import GentleEngine
from gentle_mcp.tools import GentleToolbox

# Test data constants
TEST_SEQUENCES = {
    "short_dna": "ATGAAAGCACTGATTCTATTGCTG",
    "pcr_template": "ATGAAAGCACTGATTCTATTGCTGAAAAAGATAATAGGATCCTTTTTTTTAAAA",
    "two_ecori_sites": "ATGCCCGGGAATTCTTTAAACCCGGGAATTCAAATTTGGGCCCATG",
    "one_ecori_site": "GAATTCATGAAAGCACTGATTCTATTGCTGAAAAAGATAATAGGATCC",
    "no_sites": "ATATATATATATATATATAT",
}

TEST_PRIMERS = {
    "forward": "ATGAAAGCACTGATTC",
    "reverse": "ATTATCTTTTTCAGC",
}

FASTA_CONTENT = """>test_sequence
ATGAAAGCACTGATTCTATTGCTGAAAAAGATAAT
"""

GENBANK_CONTENT = """LOCUS       test_seq                  35 bp    DNA     linear   UNK 01-JAN-1980
DEFINITION  Test sequence for GENtle.
ACCESSION   test_seq
VERSION     test_seq
KEYWORDS    .
SOURCE      synthetic
  ORGANISM  synthetic
FEATURES             Location/Qualifiers
     source          1..35
                     /mol_type="genomic DNA"
     gene            1..24
                     /gene="test_gene"
ORIGIN
        1 atgaaagcac tgattctatt gctgaaaaag ataat
//
"""


@pytest.fixture
def engine():
    """A fresh engine over an empty project state."""
    return GentleEngine()


@pytest.fixture
def sample_sequences():
    """DNA fixtures keyed by what they contain."""
    return TEST_SEQUENCES


@pytest.fixture
def sample_primers():
    """A primer pair that amplifies pcr_template."""
    return TEST_PRIMERS


@pytest.fixture
def state_path(tmp_path):
    """Path of a state file that does not exist yet."""
    return str(tmp_path / "project" / ".gentle_state.json")


@pytest.fixture
def toolbox(state_path):
    """A toolbox whose default state is state_path."""
    return GentleToolbox(state_path)


@pytest.fixture
def sequence_files(tmp_path):
    """FASTA and GenBank files on disk."""
    fasta = tmp_path / "insert.fasta"
    fasta.write_text(FASTA_CONTENT)
    genbank = tmp_path / "test_seq.gb"
    genbank.write_text(GENBANK_CONTENT)
    return {"fasta": str(fasta), "genbank": str(genbank)}
