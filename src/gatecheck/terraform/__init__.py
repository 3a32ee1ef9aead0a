"""Terraform side of gatecheck -- parse the files and extract a typed model.

Typical usage::

    from gatecheck.terraform import extract_model, load_terraform

    model = extract_model(load_terraform("terraform/"))

Sub-modules:

* :mod:`~gatecheck.terraform.loader` -- discovery and HCL parsing.
* :mod:`~gatecheck.terraform.expressions` -- capture of ``templatefile``
  arguments and module references from expression text.
* :mod:`~gatecheck.terraform.extractor` -- builds the
  :class:`~gatecheck.models.TerraformModel`.
"""

from gatecheck.terraform.extractor import extract_model
from gatecheck.terraform.loader import REQUIRED_FILES, load_terraform, parse_terraform

__all__ = ["extract_model", "load_terraform", "parse_terraform", "REQUIRED_FILES"]
