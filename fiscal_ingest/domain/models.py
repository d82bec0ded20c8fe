"""
Modelos de domínio para NF-e e CT-e
===================================

Define as estruturas Pydantic produzidas pelos builders e consumidas pelo
orquestrador:
- `Participante` / `Endereco`: emitente, destinatário, remetente etc.
- `NotaFiscal` (NF-e) com itens, impostos por item e totais
- `ConhecimentoTransporte` (CT-e) com valores da prestação, carga e
  documentos referenciados
- `AccessKey`: chave de acesso de 44 dígitos decomposta em segmentos
- `ValidationResult` e `ProcessingResult`: saídas do motor

Os validadores normalizam documentos (somente dígitos) e valores numéricos
em formato brasileiro (vírgula) ou americano (ponto).
"""
# fiscal_ingest/domain/models.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _digits(v: Any) -> str:
    if v is None:
        return ""
    return "".join(filter(str.isdigit, str(v)))


class DocumentType(str, Enum):
    NOTA_FISCAL = "NFe"
    CONHECIMENTO_TRANSPORTE = "CTe"

    @property
    def label(self) -> str:
        """Rótulo de exibição ("NF-e" / "CT-e")."""
        return "NF-e" if self is DocumentType.NOTA_FISCAL else "CT-e"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TipoNota(str, Enum):
    ENTRADA = "entrada"
    SAIDA = "saida"


class TipoServicoCTe(str, Enum):
    NORMAL = "normal"
    SUBCONTRATACAO = "subcontratacao"
    REDESPACHO = "redespacho"
    REDESPACHO_INTERMEDIARIO = "redespacho_intermediario"
    SERVICO_VINCULADO_MULTIMODAL = "servico_vinculado_multimodal"

    @classmethod
    def from_code(cls, code: Optional[str]) -> "TipoServicoCTe":
        """Converte o `tpServ` do XML (0..4); códigos desconhecidos viram NORMAL."""
        mapping = {
            "0": cls.NORMAL,
            "1": cls.SUBCONTRATACAO,
            "2": cls.REDESPACHO,
            "3": cls.REDESPACHO_INTERMEDIARIO,
            "4": cls.SERVICO_VINCULADO_MULTIMODAL,
        }
        return mapping.get((code or "").strip(), cls.NORMAL)


class Modal(str, Enum):
    RODOVIARIO = "rodoviario"
    AEREO = "aereo"
    AQUAVIARIO = "aquaviario"
    FERROVIARIO = "ferroviario"
    DUTOVIARIO = "dutoviario"

    @classmethod
    def from_code(cls, code: Optional[str]) -> "Modal":
        """Converte o `modal` do XML (01..05); ausente ou desconhecido vira RODOVIARIO."""
        mapping = {
            "01": cls.RODOVIARIO,
            "02": cls.AEREO,
            "03": cls.AQUAVIARIO,
            "04": cls.FERROVIARIO,
            "05": cls.DUTOVIARIO,
        }
        return mapping.get((code or "").strip().zfill(2), cls.RODOVIARIO)


# =============================================================================
# Participantes
# =============================================================================


class Endereco(BaseModel):
    """Endereço estruturado de um participante."""
    model_config = ConfigDict(frozen=True)

    logradouro: str = ""
    numero: str = ""
    complemento: Optional[str] = None
    bairro: str = ""
    codigo_municipio: str = ""
    municipio: str = ""
    uf: str = ""
    cep: str = ""
    codigo_pais: str = "1058"
    pais: str = "Brasil"

    @field_validator("cep", "codigo_municipio", mode="before")
    @classmethod
    def _normalize_digits(cls, v: Any) -> str:
        """Remove caracteres não numéricos."""
        return _digits(v)

    @field_validator("uf", mode="before")
    @classmethod
    def _normalize_uf(cls, v: Any) -> str:
        return str(v or "").strip().upper()


class Participante(BaseModel):
    """Emitente, destinatário, remetente, expedidor ou recebedor.

    `cnpj_cpf` guarda a forma canônica (somente dígitos); 14 dígitos indicam
    pessoa jurídica e 11 dígitos pessoa física.
    """
    model_config = ConfigDict(frozen=True)

    cnpj_cpf: str = ""
    razao_social: str = ""
    nome_fantasia: Optional[str] = None
    endereco: Endereco = Field(default_factory=Endereco)
    inscricao_estadual: Optional[str] = None
    telefone: Optional[str] = None
    email: Optional[str] = None

    @property
    def tipo_documento(self) -> Optional[str]:
        if len(self.cnpj_cpf) == 14:
            return "CNPJ"
        if len(self.cnpj_cpf) == 11:
            return "CPF"
        return None

    @field_validator("cnpj_cpf", mode="before")
    @classmethod
    def _normalize_cnpj_cpf(cls, v: Any) -> str:
        """Remove caracteres não numéricos do CNPJ/CPF."""
        logger.debug("Normalizando CNPJ/CPF: %r", v)
        return _digits(v)

    @field_validator("telefone", mode="before")
    @classmethod
    def _normalize_telefone(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return _digits(v) or None

    @field_validator("inscricao_estadual", mode="before")
    @classmethod
    def _normalize_ie(cls, v: Any) -> Optional[str]:
        """Normaliza inscrição estadual, tratando casos especiais como ISENTO."""
        if v is None or v == "":
            return None
        v_upper = str(v).strip().upper()
        if "ISENT" in v_upper:
            return "ISENTO"
        return v_upper


# =============================================================================
# NF-e
# =============================================================================


class ImpostosItem(BaseModel):
    """Impostos declarados em um item (`det/imposto`).

    Os valores ausentes no XML ficam em zero; `cst`/`csosn` identificam a
    situação tributária do ICMS (Regime Normal ou Simples Nacional).
    """
    model_config = ConfigDict(frozen=True)

    cst: Optional[str] = None
    csosn: Optional[str] = None
    origem: Optional[str] = None
    base_calculo_icms: float = 0.0
    aliquota_icms: float = 0.0
    valor_icms: float = 0.0
    valor_ipi: float = 0.0
    valor_pis: float = 0.0
    valor_cofins: float = 0.0


class ItemNota(BaseModel):
    """Item de produto de uma NF-e."""
    model_config = ConfigDict(frozen=True)

    numero_item: int = Field(ge=1)
    codigo_produto: str = ""
    descricao: str = ""
    ncm: str = ""
    cfop: str = ""
    unidade_comercial: str = ""
    quantidade_comercial: float = 0.0
    valor_unitario: float = 0.0
    valor_total: float = 0.0
    ean: Optional[str] = None
    informacoes_adicionais: Optional[str] = None
    impostos: ImpostosItem = Field(default_factory=ImpostosItem)

    @field_validator("ean", mode="before")
    @classmethod
    def _normalize_ean(cls, v: Any) -> Optional[str]:
        # "SEM GTIN" é o valor oficial para produtos sem código de barras
        if v is None or str(v).strip().upper() in ("", "SEM GTIN"):
            return None
        return str(v).strip()

    @model_validator(mode="after")
    def validate_calculation(self):
        """Confere quantidade * valor_unitario ≈ valor_total (apenas log)."""
        if self.quantidade_comercial and self.valor_unitario:
            calculated_value = self.quantidade_comercial * self.valor_unitario
            difference = abs(calculated_value - self.valor_total)
            if difference > 0.02:
                logger.warning(
                    "Item %d: quantidade (%.4f) * valor_unitario (%.4f) = %.2f difere de valor (%.2f) em %.2f",
                    self.numero_item, self.quantidade_comercial, self.valor_unitario,
                    calculated_value, self.valor_total, difference,
                )
        return self


class Totais(BaseModel):
    """Totais da NF-e (bloco `total/ICMSTot`)."""
    model_config = ConfigDict(frozen=True)

    base_calculo_icms: float = 0.0
    valor_icms: float = 0.0
    valor_icms_desonerado: float = 0.0
    valor_fcp: float = 0.0
    base_calculo_icms_st: float = 0.0
    valor_icms_st: float = 0.0
    valor_produtos: float = 0.0
    valor_frete: float = 0.0
    valor_seguro: float = 0.0
    valor_desconto: float = 0.0
    valor_ii: float = 0.0
    valor_ipi: float = 0.0
    valor_pis: float = 0.0
    valor_cofins: float = 0.0
    outras_despesas: float = 0.0
    valor_total: float = 0.0


class NotaFiscal(BaseModel):
    """Nota Fiscal Eletrônica (modelo 55/65) extraída do XML."""
    model_config = ConfigDict(frozen=True)

    document_type: Literal[DocumentType.NOTA_FISCAL] = DocumentType.NOTA_FISCAL
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    chave_acesso: str = Field(pattern=r"^\d{44}$")
    numero: str = ""
    serie: str = ""
    data_emissao: datetime
    tipo_nota: TipoNota = TipoNota.SAIDA
    emitente: Participante
    destinatario: Participante
    itens: List[ItemNota] = Field(default_factory=list)
    totais: Totais = Field(default_factory=Totais)
    informacoes_adicionais: Optional[str] = None
    protocolo_autorizacao: Optional[str] = None
    status: ProcessingStatus = ProcessingStatus.COMPLETED
    created_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# CT-e
# =============================================================================


class ValoresPrestacaoCTe(BaseModel):
    model_config = ConfigDict(frozen=True)

    valor_total: float = 0.0
    valor_receber: float = 0.0
    valor_total_carga: float = 0.0
    produto_predominante: str = ""
    outras_caracteristicas_carga: Optional[str] = None


class QuantidadeCarga(BaseModel):
    """Grupo `infQ`: unidade (`cUnid`), tipo de medida (`tpMed`) e quantidade."""
    model_config = ConfigDict(frozen=True)

    codigo_unidade: str = ""
    tipo_medida: str = ""
    quantidade: float = 0.0


class InformacoesCarga(BaseModel):
    model_config = ConfigDict(frozen=True)

    valor_carga: float = 0.0
    produto_predominante: str = ""
    peso_bruto: float = 0.0
    peso_cubado: Optional[float] = None
    quantidades: List[QuantidadeCarga] = Field(default_factory=list)


class TipoDocumentoReferenciado(str, Enum):
    NOTA_FISCAL = "nota_fiscal"
    NOTA_FISCAL_PRODUTOR = "nota_fiscal_produtor"
    OUTROS_DOCUMENTOS = "outros_documentos"


class DocumentoReferenciado(BaseModel):
    model_config = ConfigDict(frozen=True)

    tipo: TipoDocumentoReferenciado
    chave_acesso: Optional[str] = None
    numero: Optional[str] = None
    serie: Optional[str] = None


class ConhecimentoTransporte(BaseModel):
    """Conhecimento de Transporte Eletrônico (modelo 57/67) extraído do XML."""
    model_config = ConfigDict(frozen=True)

    document_type: Literal[DocumentType.CONHECIMENTO_TRANSPORTE] = DocumentType.CONHECIMENTO_TRANSPORTE
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    chave_acesso: str = Field(pattern=r"^\d{44}$")
    numero: str = ""
    serie: str = ""
    data_emissao: datetime
    tipo_servico: TipoServicoCTe = TipoServicoCTe.NORMAL
    emitente: Participante
    remetente: Participante
    destinatario: Participante
    expedidor: Optional[Participante] = None
    recebedor: Optional[Participante] = None
    valores_prestacao: ValoresPrestacaoCTe = Field(default_factory=ValoresPrestacaoCTe)
    informacoes_carga: InformacoesCarga = Field(default_factory=InformacoesCarga)
    documentos_referenciados: List[DocumentoReferenciado] = Field(default_factory=list)
    modal: Modal = Modal.RODOVIARIO
    informacoes_adicionais: Optional[str] = None
    protocolo_autorizacao: Optional[str] = None
    status: ProcessingStatus = ProcessingStatus.COMPLETED
    created_at: datetime = Field(default_factory=_utcnow)


DocumentoFiscal = Union[NotaFiscal, ConhecimentoTransporte]


# =============================================================================
# Chave de acesso
# =============================================================================


class AccessKey(BaseModel):
    """Chave de acesso de 44 dígitos decomposta em seus segmentos.

    Layout: cUF(2) AAMM(4) CNPJ(14) mod(2) serie(3) nNF(9) tpEmis(1) cNF(8) cDV(1).
    Só é construída pelo codec após a conferência do dígito verificador.
    """
    model_config = ConfigDict(frozen=True)

    chave: str = Field(pattern=r"^\d{44}$")
    codigo_uf: int
    ano_mes: str
    cnpj_emitente: str
    modelo: str
    serie: str
    numero: str
    tipo_emissao: str
    codigo_numerico: str
    digito_verificador: int

    @property
    def ano(self) -> int:
        return 2000 + int(self.ano_mes[:2])

    @property
    def mes(self) -> int:
        return int(self.ano_mes[2:])


# =============================================================================
# Validação fiscal
# =============================================================================


class ErrorSeverity(str, Enum):
    CRITICAL = "critical"  # impede o processamento
    HIGH = "high"          # erro fiscal grave
    MEDIUM = "medium"      # divergência que pode gerar multa
    LOW = "low"            # inconsistência menor


class ValidationIssue(BaseModel):
    """Erro de validação (afeta `is_valid`)."""
    model_config = ConfigDict(frozen=True)

    code: str
    field: str
    message: str
    severity: ErrorSeverity


class ValidationWarning(BaseModel):
    """Aviso de validação (não afeta `is_valid`)."""
    model_config = ConfigDict(frozen=True)

    code: str
    field: str
    message: str
    impact: str


class ValidationResult(BaseModel):
    """Resultado imutável de uma rodada de validação fiscal.

    `is_valid` é derivado da lista de erros na construção; avisos e sugestões
    nunca afetam a validade.
    """
    model_config = ConfigDict(frozen=True)

    chave_acesso: str = ""
    document_type: DocumentType
    is_valid: bool = True
    errors: Tuple[ValidationIssue, ...] = ()
    warnings: Tuple[ValidationWarning, ...] = ()
    suggestions: Tuple[str, ...] = ()
    validated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def _derive_is_valid(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data["is_valid"] = not data.get("errors")
        return data


class ProcessingResult(BaseModel):
    """Saída do orquestrador para um documento ingerido."""
    model_config = ConfigDict(frozen=True)

    document_type: DocumentType
    chave_acesso: str
    success: bool
    message: str
    validation: ValidationResult
    duplicate: bool = False
    record_id: Optional[str] = None
