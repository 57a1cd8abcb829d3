from fhir_demo.main import run

run()
