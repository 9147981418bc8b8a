"""Pydantic models for the prescription document, exemplars and result scores.

The prescription model doubles as the structured-output contract handed to
the extraction backends, so every field carries a description and a
zero-value default: a backend may omit whatever it cannot read.
"""
from __future__ import annotations

import json
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

ALLOWED_FIELD_SCORES = (0.0, 0.25, 0.75, 1.0)


class Address(BaseModel):
    """Postal address."""
    street: str = Field(default="", description="Street address of the location")
    city: str = Field(default="", description="City name")
    state: str = Field(default="", description="Two-letter state abbreviation (e.g., NY, CA)")
    zip: str = Field(default="", description="ZIP or postal code")


class Measurement(BaseModel):
    unit: str = Field(default="", description="The unit the measurement was taken in")
    value: str = Field(default="", description="The recorded value of the measurement")


class PhoneNumber(BaseModel):
    label: str = Field(default="", description="Label used to identify the phone number e.g. Home, Mobile, Work")
    number: str = Field(default="", description="The numeric phone number without any spaces or formatting characters")
    extension: str = Field(default="", description="The extension to dial (if any)")


class Contact(BaseModel):
    name: str = Field(default="", description="Full name of the contact person")
    relationship: str = Field(
        default="",
        description="The patient's relationship to the contact person (e.g., spouse, parent)",
    )
    phone: str = Field(default="", description="Phone number for the emergency or alternate contact")


class Insurance(BaseModel):
    type: str = Field(default="", description="Primary or Secondary insurance type")
    provider: str = Field(default="", description="Name of the insurance provider")
    id_number: str = Field(default="", description="Patient's insurance ID number")
    group_number: str = Field(default="", description="Insurance group number")
    rx_bin: str = Field(default="", description="Prescription BIN (Bank Identification Number)")
    pcn: str = Field(default="", description="Processor Control Number for pharmacy claims")
    policyholder_name: str = Field(default="", description="Full name of the insurance policyholder")
    policyholder_dob: str = Field(default="", description="Date of birth of the policyholder (YYYY-MM-DD)")
    phone_number: str = Field(default="", description="Phone number of the insurance provider")


class Patient(BaseModel):
    """Demographic and insurance details of the patient."""
    first_name: str = Field(default="", description="Patient's first name")
    middle_name: str = Field(default="", description="Patient's middle name")
    last_name: str = Field(default="", description="Patient's last name")
    dob: str = Field(default="", description="Patient's date of birth (YYYY-MM-DD)")
    sex: str = Field(default="", description="Patient's biological sex (e.g., Male, Female, Other)")
    weight: Measurement = Field(default_factory=Measurement, description="Patient's recorded weight")
    height: Measurement = Field(default_factory=Measurement, description="Patient's recorded height")
    address: Address = Field(default_factory=Address, description="Patient's residential address")
    phone_numbers: list[PhoneNumber] = Field(default_factory=list, description="Patient's contact phone numbers")
    allergies: list[str] = Field(default_factory=list, description="List of known allergies")
    emergency_contact: Contact = Field(
        default_factory=Contact,
        description="Emergency contact details for the patient",
    )
    insurance: list[Insurance] = Field(default_factory=list, description="List of the patient's insurance policies")


class PrescriberOffice(BaseModel):
    name: str = Field(default="", description="Name of the prescriber's office or medical facility")
    address: Address = Field(default_factory=Address, description="Physical address of the prescriber's office")
    phone: str = Field(default="", description="Main phone number for the office")
    fax: str = Field(default="", description="Fax number for the office")
    contact_name: str = Field(default="", description="Name of the designated office contact person")
    contact_email: str = Field(default="", description="Email address of the office contact person")


class Prescriber(BaseModel):
    """Information about the prescribing healthcare provider."""
    name: str = Field(default="", description="Full name of the prescriber")
    specialty: str = Field(default="", description="Medical specialty of the prescriber (e.g., Oncology, Dermatology)")
    npi: str = Field(default="", description="National Provider Identifier (NPI) of the prescriber")
    state_license: str = Field(default="", description="Prescriber's state license number")
    dea: str = Field(default="", description="Prescriber's DEA number for controlled substances")
    office: PrescriberOffice = Field(
        default_factory=PrescriberOffice,
        description="Details of the prescriber's office or practice",
    )


class Diagnosis(BaseModel):
    description: str = Field(default="", description="Text description of the diagnosis (e.g., Psoriatic Arthritis)")
    icd10_code: str = Field(default="", description="ICD-10 code for the diagnosis (e.g., L40.50)")


class PatientDiagnosis(BaseModel):
    date_of_diagnosis: str = Field(default="", description="Date when the diagnosis was made (YYYY-MM-DD)")
    primary_diagnosis: Diagnosis = Field(
        default_factory=Diagnosis,
        description="The primary diagnosis for which the medication is prescribed",
    )
    additional_diagnoses: list[Diagnosis] = Field(
        default_factory=list,
        description="Any additional diagnoses relevant to the patient",
    )


class Medication(BaseModel):
    drug_name: str = Field(default="", description="Name of the prescribed drug")
    ndc: str = Field(default="", description="National Drug Code (NDC) for the medication")
    form: str = Field(default="", description="Dosage form (e.g., tablet, injection, packet)")
    strength: str = Field(default="", description="Drug strength (e.g., 40 mg/0.4 mL)")
    sig: str = Field(default="", description="Verbatim instructions for administration (SIG) from the form")
    quantity: str = Field(default="", description="Amount of medication to dispense")
    refills: str = Field(default="", description="Number of authorized refills")
    start_date: str = Field(default="", description="Date the patient should begin the medication (YYYY-MM-DD)")
    duration: str = Field(default="", description="Intended treatment duration (e.g., 12 weeks)")
    administration_notes: str = Field(default="", description="Plain English translation of SIG directions")
    indication: str = Field(default="", description="Diagnosis or condition the drug is intended to treat")


class TherapyHistory(BaseModel):
    name: str = Field(default="", description="Name of the previous therapy or medication")
    reason_for_discontinuation: str = Field(default="", description="Reason why the previous therapy was stopped")


class DeliveryInfo(BaseModel):
    destination: str = Field(
        default="",
        description="Where the prescription should be shipped (e.g., Patient's Home, Prescriber's Office)",
    )
    notes: str = Field(default="", description="Additional delivery instructions or details")


class SignatureInfo(BaseModel):
    date: str = Field(default="", description="Date the prescription was signed by the prescriber (YYYY-MM-DD)")
    daw_code: str = Field(
        default="",
        description=(
            "Dispense As Written (DAW) code indicating substitution permission "
            "(e.g., 0 = substitution allowed, 1 = brand medically necessary)"
        ),
    )


class AttachmentDetails(BaseModel):
    insurance_cards: bool = Field(
        default=False,
        description="Whether a copy of the insurance card (front and back) is attached",
    )
    lab_results: bool = Field(default=False, description="Whether recent laboratory results are included")
    pathology_reports: bool = Field(default=False, description="Whether a pathology report is attached")
    clinical_notes: bool = Field(default=False, description="Whether recent clinical or office notes are included")
    other_documents: bool = Field(default=False, description="Whether any other relevant documents are attached")


class Prescription(BaseModel):
    """A parsed prescription or specialty pharmacy order form."""
    date_written: str = Field(default="", description="Date the prescription was written (YYYY-MM-DD)")
    date_needed: str = Field(default="", description="Date by which the medication is needed (YYYY-MM-DD)")
    patient: Patient = Field(default_factory=Patient, description="Demographic and insurance details of the patient")
    prescriber: Prescriber = Field(
        default_factory=Prescriber,
        description="Information about the prescribing healthcare provider",
    )
    diagnosis: PatientDiagnosis = Field(
        default_factory=PatientDiagnosis,
        description="Clinical diagnosis details associated with the prescription",
    )
    clinical_info: list[str] = Field(
        default_factory=list,
        description="Additional clinical notes, such as lab values, genetic markers, or BSA",
    )
    medications: list[Medication] = Field(
        default_factory=list,
        description="List of medications prescribed on this form",
    )
    therapy_status: str = Field(
        default="",
        description="Indicates whether the therapy is new, restarted, or ongoing",
    )
    failed_therapies: list[TherapyHistory] = Field(
        default_factory=list,
        description="List of prior therapies the patient tried and discontinued",
    )
    delivery: DeliveryInfo = Field(default_factory=DeliveryInfo, description="Shipping instructions for the medication")
    prescriber_signature: SignatureInfo = Field(
        default_factory=SignatureInfo,
        description="Signature and DAW code authorization from the prescriber",
    )
    attachments: AttachmentDetails = Field(
        default_factory=AttachmentDetails,
        description="Boolean indicators for supplemental documents provided with the form",
    )

    def canonical_json(self) -> str:
        """Compact JSON used for embeddings, exemplar content and scoring."""
        return self.model_dump_json()


class SamplePrescription(BaseModel):
    """A validated exemplar retrieved from the sample store."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    file_id: str
    mime_type: str
    content: str


class FieldScore(BaseModel):
    """Evaluation of a single field in the parser output."""
    field_path: str = Field(
        description="Path to the evaluated field in dot notation (e.g. patient.first_name, medications[0].form)",
    )
    expected_value: str | None = Field(
        description="The value expected for this field, can be null if not present in expected data",
    )
    output_value: str | None = Field(
        description="The value produced by the parser, can be null if missing",
    )
    score: float = Field(
        description=(
            "Score between 0.0 and 1.0 indicating correctness of the parsed value. "
            "Possible scores are 0.0, 0.25, 0.75, and 1.0."
        ),
    )
    reasoning: str = Field(description="Explanation for why this score was assigned")

    @field_validator("expected_value", "output_value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> str | None:
        if v is None or isinstance(v, str):
            return v
        return json.dumps(v)

    @field_validator("score")
    @classmethod
    def validate_score(cls, v: float) -> float:
        if v not in ALLOWED_FIELD_SCORES:
            raise ValueError(f"score must be one of {ALLOWED_FIELD_SCORES}, got {v}")
        return v


class ParserResultScore(BaseModel):
    """Overall evaluation of a parser result against a validated document."""
    field_scores: list[FieldScore] = Field(description="Detailed scoring information for each evaluated field")
    total_awarded_points: float = Field(
        description=(
            "Sum of points awarded across all evaluated fields. Each field is scored between 0.0 and 1.0. "
            "Possible scores are 0.0, 0.25, 0.75, and 1.0."
        ),
    )
    total_possible_points: float = Field(
        description="Maximum possible points if all fields were perfectly parsed. Up to one point is awarded for each field.",
    )
    overall_score_percentage: float = Field(description="Percentage score calculated as (awarded/possible)*100")
    summary_critique: str = Field(
        description=(
            "Overall assessment of the parser output quality based on scores. "
            "This is a human-readable summary of the parser's performance."
        ),
    )
